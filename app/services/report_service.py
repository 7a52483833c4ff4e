"""프로젝트 리포트 (런케이스 상태 집계)"""
from __future__ import annotations

import math

from sqlalchemy import func

from app import db
from app.models import Case, Result, Run, RunCase, EXECUTION_STATUSES


def summary(project_id: int) -> dict:
    """
    프로젝트 전체 런케이스 상태 요약.

    completion_rate = 실행된(untested 아닌) 런케이스 비율(%) 반올림 정수. 런케이스가 없으면 0.
    """
    rows = db.session.query(RunCase.status, func.count(RunCase.id)).join(
        Run, Run.id == RunCase.run_id
    ).filter(
        Run.project_id == project_id
    ).group_by(RunCase.status).all()

    totals = {status: 0 for status in EXECUTION_STATUSES}
    for status, cnt in rows:
        totals[status] = int(cnt)

    total = sum(totals.values())
    executed = total - totals['untested']
    # .5는 올림
    completion_rate = math.floor(executed * 100 / total + 0.5) if total else 0

    return {
        'total_run_cases': total,
        'untested': totals['untested'],
        'pass': totals['pass'],
        'fail': totals['fail'],
        'blocked': totals['blocked'],
        'completion_rate': completion_rate,
    }


def failures(project_id: int) -> list[dict]:
    """실패 런케이스 목록 (최근 런케이스 순)"""
    rows = db.session.query(
        Run.id, Run.name, RunCase.id, Case.id, Case.title, Case.priority, Result.comment
    ).select_from(RunCase).join(
        Run, Run.id == RunCase.run_id
    ).join(
        Case, Case.id == RunCase.case_id
    ).outerjoin(
        Result, Result.run_case_id == RunCase.id
    ).filter(
        Run.project_id == project_id,
        RunCase.status == 'fail',
    ).order_by(RunCase.id.desc()).all()

    return [{
        'run_id': run_id,
        'run_name': run_name,
        'run_case_id': run_case_id,
        'case_id': case_id,
        'case_title': case_title,
        'priority': priority,
        'comment': comment or '',
    } for run_id, run_name, run_case_id, case_id, case_title, priority, comment in rows]


def priority_breakdown(project_id: int) -> list[dict]:
    """케이스 우선순위별 개수 (많은 순, 같으면 우선순위 이름순)"""
    cnt = func.count(Case.id).label('cnt')
    rows = db.session.query(Case.priority, cnt).filter(
        Case.project_id == project_id
    ).group_by(Case.priority).order_by(cnt.desc(), Case.priority).all()

    return [{'priority': priority, 'count': int(count)} for priority, count in rows]
