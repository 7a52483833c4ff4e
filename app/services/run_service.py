"""
테스트 런 서비스.

- 런 생성 시 각 케이스의 현재(head) 버전 id를 런케이스에 고정한다.
  이후 케이스를 수정해도 이미 만들어진 런케이스의 case_version_id는 바뀌지 않는다.
- 결과 저장은 런케이스당 1건 upsert이며, 런케이스의 status는 결과 저장으로만 바뀐다.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import func

from app import db
from app.exceptions import NotFound, ValidationFailed
from app.models import (
    Case, CaseVersion, Project, Result, Run, RunCase, StepResult,
    EXECUTION_STATUSES, RUN_STATUSES, utcnow,
)
from app.services.case_service import coerce_int, get_version
from app.utils.db import atomic

logger = logging.getLogger(__name__)


def calc_overall_status(statuses: Iterable[str]) -> str:
    """
    스텝 상태들 → 전체 상태 (순서 무관).

    fail 하나라도 있으면 fail, 그다음 blocked, 전부 pass면 pass,
    전부 untested(또는 비어있음)면 untested, 그 외 혼합(pass + untested 등)은 blocked.
    """
    statuses = list(statuses)
    if not statuses:
        return 'untested'
    if 'fail' in statuses:
        return 'fail'
    if 'blocked' in statuses:
        return 'blocked'
    if all(s == 'pass' for s in statuses):
        return 'pass'
    if all(s == 'untested' for s in statuses):
        return 'untested'
    return 'blocked'


def _get_run(run_id: int) -> Run:
    run = db.session.get(Run, run_id)
    if run is None:
        raise NotFound('run', run_id)
    return run


# ============ Run Snapshot Binder ============

def create_run(
    project_id: int,
    name: str,
    release_version: Optional[str],
    case_ids: Iterable[int],
    actor_id: Optional[int] = None,
) -> int:
    """
    런 생성 + 런케이스 스냅샷 바인딩.

    프로젝트에 속하지 않는 케이스 id는 무시하고, head 버전이 없는 케이스는
    런 전체를 실패시키지 않고 건너뛴다.
    """
    name = (name or '').strip()
    if not name:
        raise ValidationFailed('name is required', details={'name': 'required'})

    wanted = {cid for cid in (coerce_int(c) for c in case_ids or []) if cid is not None}

    with atomic():
        if db.session.get(Project, project_id) is None:
            raise NotFound('project', project_id)

        run = Run(
            project_id=project_id,
            name=name,
            release_version=(release_version or '').strip(),
            created_by=actor_id,
            status='open',
        )
        db.session.add(run)
        db.session.flush()

        rows = []
        if wanted:
            rows = db.session.query(Case.id, Case.current_version_id).filter(
                Case.project_id == project_id,
                Case.id.in_(sorted(wanted)),
            ).order_by(Case.id).all()

        bound = 0
        for case_id, version_id in rows:
            if not version_id:
                logger.warning(f'런 생성: head 버전이 없는 케이스 건너뜀 (run_id={run.id}, case_id={case_id})')
                continue
            db.session.add(RunCase(
                run_id=run.id,
                case_id=case_id,
                case_version_id=version_id,
                status='untested',
            ))
            bound += 1
        run_id = run.id

    logger.info(f'런 생성: run_id={run_id} project_id={project_id} 케이스 {bound}/{len(wanted)}개 바인딩')
    return run_id


def update_run_status(run_id: int, status: str) -> None:
    """런 open/closed 전환 (런케이스에는 영향 없음)"""
    if status not in RUN_STATUSES:
        raise ValidationFailed('invalid run status', details={'status': status})
    with atomic():
        _get_run(run_id).status = status


def update_run(run_id: int, name: str, release_version: Optional[str] = '') -> None:
    """런 이름 / 릴리스 버전 수정"""
    name = (name or '').strip()
    if not name:
        raise ValidationFailed('name is required', details={'name': 'required'})
    with atomic():
        run = _get_run(run_id)
        run.name = name
        run.release_version = (release_version or '').strip()


def delete_run(run_id: int) -> None:
    """런 삭제 (이 런의 런케이스/결과/스텝결과만 삭제, 케이스와 버전은 유지)"""
    with atomic():
        db.session.delete(_get_run(run_id))
    logger.info(f'런 삭제: run_id={run_id}')


def list_runs(project_id: int) -> list[dict]:
    rows = db.session.query(Run, func.count(RunCase.id)).outerjoin(
        RunCase, RunCase.run_id == Run.id
    ).filter(
        Run.project_id == project_id
    ).group_by(Run.id).order_by(Run.id.desc()).all()

    result = []
    for run, case_count in rows:
        item = run.to_dict()
        item['case_count'] = case_count
        result.append(item)
    return result


def get_run_detail(run_id: int) -> Optional[dict]:
    """런 + 런케이스 목록 (케이스 제목/우선순위, 바인딩된 버전 번호, 결과 코멘트)"""
    run = db.session.get(Run, run_id)
    if run is None:
        return None

    rows = db.session.query(RunCase, Case.title, Case.priority, CaseVersion.version_no, Result).join(
        Case, Case.id == RunCase.case_id
    ).join(
        CaseVersion, CaseVersion.id == RunCase.case_version_id
    ).outerjoin(
        Result, Result.run_case_id == RunCase.id
    ).filter(
        RunCase.run_id == run_id
    ).order_by(RunCase.id).all()

    cases = []
    for run_case, title, priority, version_no, result in rows:
        item = run_case.to_dict()
        item.update({
            'case_title': title,
            'priority': priority,
            'version_no': version_no,
            'result_comment': result.comment if result else None,
            'executed_at': result.executed_at.isoformat() if result else None,
        })
        cases.append(item)

    return {'run': run.to_dict(), 'cases': cases}


def get_run_case_execution(run_case_id: int) -> Optional[dict]:
    """실행 화면용: 런케이스 + 고정된 버전 스냅샷 + 저장된 결과"""
    run_case = db.session.get(RunCase, run_case_id)
    if run_case is None:
        return None

    snapshot = get_version(run_case.case_version_id)
    if snapshot is None:
        return None

    return {
        'run_case': run_case.to_dict(),
        'snapshot': snapshot,
        'result': run_case.result.to_dict() if run_case.result else None,
    }


# ============ Execution / Result Engine ============

def save_result(
    run_case_id: int,
    comment: Optional[str],
    step_results: list[dict],
    actor_id: Optional[int] = None,
) -> dict:
    """
    결과 저장 (upsert).

    기존 결과가 있으면 필드를 덮어쓰고 스텝 결과는 전부 지운 뒤 새로 넣는다(병합하지 않음).
    런케이스 status도 같은 트랜잭션에서 전체 상태로 갱신한다.

    Returns:
        {'overall_status', 'result_id'}
    """
    errors = {}
    normalized = []
    for idx, item in enumerate(step_results or []):
        step_no = coerce_int(item.get('step_no'))
        status = item.get('status')
        if step_no is None:
            errors[f'step_results[{idx}].step_no'] = 'must be an integer'
        if status not in EXECUTION_STATUSES:
            errors[f'step_results[{idx}].status'] = f'must be one of {", ".join(EXECUTION_STATUSES)}'
        normalized.append({'step_no': step_no, 'status': status, 'comment': (item.get('comment') or '')})
    if errors:
        raise ValidationFailed('invalid step results', details=errors)

    overall_status = calc_overall_status(s['status'] for s in normalized)

    with atomic():
        run_case = db.session.get(RunCase, run_case_id)
        if run_case is None:
            raise NotFound('run_case', run_case_id)

        result = run_case.result
        if result is None:
            result = Result(run_case_id=run_case.id)
            db.session.add(result)
        else:
            result.step_results.clear()
            db.session.flush()  # 기존 스텝 결과 삭제 후 재삽입 (unique(result_id, step_no))

        result.overall_status = overall_status
        result.comment = comment or ''
        result.executed_by = actor_id
        result.executed_at = utcnow()
        result.step_results.extend(
            StepResult(step_no=s['step_no'], status=s['status'], comment=s['comment'])
            for s in normalized
        )

        run_case.status = overall_status
        db.session.flush()
        result_id = result.id

    logger.info(f'결과 저장: run_case_id={run_case_id} status={overall_status} steps={len(normalized)}')
    return {'overall_status': overall_status, 'result_id': result_id}
