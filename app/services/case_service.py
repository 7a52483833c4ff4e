"""
케이스 버전 저장소 + 스위트/프로젝트 관리.

- 케이스를 수정할 때마다 새 버전(전체 스냅샷)을 만들고 head 포인터만 옮긴다.
- 기존 버전 행은 절대 수정하지 않는다.
- 스텝은 test_steps 테이블이 원본이며, 스냅샷 JSON에 들어있는 스텝 사본은
  조회 시 항상 test_steps 기준으로 다시 채운다.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Optional

from sqlalchemy import func

from app import db
from app.exceptions import NotFound, ValidationFailed, VersionConflict
from app.models import Case, CaseVersion, Project, Step, Suite, utcnow
from app.utils.db import atomic

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 'Medium'
UNKNOWN_SUITE_NAME = 'Unknown Suite'


def _text(value: Any) -> str:
    return str(value if value is not None else '').strip()


def coerce_int(value: Any) -> Optional[int]:
    """정수로 변환 (step_no, id 등). 숫자가 아니거나 유한한 정수가 아니면 None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def _is_fractional(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(str(value).strip())
    except ValueError:
        return False
    return math.isfinite(number) and not number.is_integer()


def normalize_steps(steps: Optional[list[dict]]) -> list[dict]:
    """
    스텝 정규화: 텍스트 trim, step_no 변환, step_no 오름차순 정렬.

    숫자가 아니거나 유한하지 않은 step_no 항목은 버린다.
    소수 step_no(1.5 등)는 ValidationFailed.
    """
    normalized = []
    for idx, step in enumerate(steps or []):
        raw_step_no = step.get('step_no')
        step_no = coerce_int(raw_step_no)
        if step_no is None:
            if _is_fractional(raw_step_no):
                raise ValidationFailed(
                    'step_no must be an integer',
                    details={f'steps[{idx}].step_no': raw_step_no},
                )
            continue
        normalized.append({
            'step_no': step_no,
            'action': _text(step.get('action')),
            'input_data': _text(step.get('input_data')),
            'expected_result': _text(step.get('expected_result')),
        })
    normalized.sort(key=lambda s: s['step_no'])
    return normalized


def _normalize_tags(tags: Any) -> list[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(',')
    return [str(t).strip() for t in tags if str(t).strip()]


def _case_fields(data: dict) -> dict:
    """입력 dict → 케이스 행/스냅샷에 공통으로 들어가는 메타데이터"""
    return {
        'suite_id': data.get('suite_id'),
        'title': _text(data.get('title')),
        'quality_attribute': _text(data.get('quality_attribute')),
        'category_large': _text(data.get('category_large')),
        'category_medium': _text(data.get('category_medium')),
        'preconditions': _text(data.get('preconditions')),
        'priority': _text(data.get('priority')) or DEFAULT_PRIORITY,
        'tags': _normalize_tags(data.get('tags')),
    }


def validate_case_input(data: dict) -> None:
    """
    폼/API 입력 검증 (저장소 호출 전에 호출자가 수행).

    저장소 자체는 스텝 0개도 허용하지만, 화면/API에서는 스텝이 최소 1개 있어야 한다.
    """
    errors = {}
    if not _text(data.get('title')):
        errors['title'] = 'required'

    suite_id = data.get('suite_id')
    if suite_id in (None, ''):
        errors['suite_id'] = 'required'
    elif coerce_int(suite_id) is None:
        errors['suite_id'] = 'must be an integer'

    steps = data.get('steps')
    if not isinstance(steps, list) or not steps:
        errors['steps'] = 'at least one step is required'
    else:
        seen = set()
        for idx, step in enumerate(steps):
            if not isinstance(step, dict):
                errors[f'steps[{idx}]'] = 'must be an object'
                continue
            step_no = coerce_int(step.get('step_no'))
            if step_no is None or step_no <= 0:
                errors[f'steps[{idx}].step_no'] = 'must be a positive integer'
            elif step_no in seen:
                errors[f'steps[{idx}].step_no'] = f'duplicate step_no ({step_no})'
            else:
                seen.add(step_no)
            if not _text(step.get('expected_result')):
                errors[f'steps[{idx}].expected_result'] = 'required'

    if errors:
        raise ValidationFailed('invalid case payload', details=errors)


# ============ Suite / Project ============

def resolve_suite_name(suite_id: int) -> str:
    suite = db.session.get(Suite, suite_id)
    return suite.name if suite else UNKNOWN_SUITE_NAME


def _resolve_suite(project_id: int, suite_id: Any) -> Suite:
    suite_pk = coerce_int(suite_id)
    suite = db.session.get(Suite, suite_pk) if suite_pk is not None else None
    if suite is None or suite.project_id != project_id:
        raise ValidationFailed('suite not found in project', details={'suite_id': suite_id})
    return suite


def _get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFound('project', project_id)
    return project


def list_projects() -> list[dict]:
    projects = Project.query.order_by(Project.id).all()
    return [{
        'id': p.id,
        'name': p.name,
        'created_at': p.created_at.isoformat() if p.created_at else None,
    } for p in projects]


def create_project(name: str) -> int:
    name = _text(name)
    if not name:
        raise ValidationFailed('name is required', details={'name': 'required'})
    with atomic():
        project = Project(name=name)
        db.session.add(project)
        db.session.flush()
        project_id = project.id
    logger.info(f'프로젝트 생성: id={project_id} name={name}')
    return project_id


def update_project(project_id: int, name: str) -> None:
    name = _text(name)
    if not name:
        raise ValidationFailed('name is required', details={'name': 'required'})
    with atomic():
        _get_project(project_id).name = name


def delete_project(project_id: int) -> None:
    """프로젝트 삭제 (스위트/케이스/런 전부 삭제)"""
    with atomic():
        db.session.delete(_get_project(project_id))
    logger.info(f'프로젝트 삭제: id={project_id}')


def list_suites(project_id: int) -> list[dict]:
    suites = Suite.query.filter_by(project_id=project_id).order_by(Suite.name).all()
    return [s.to_dict() for s in suites]


def _check_parent(project_id: int, suite_id: Optional[int], parent_id: Any) -> Optional[int]:
    if parent_id in (None, ''):
        return None
    parent_pk = coerce_int(parent_id)
    if suite_id is not None and parent_pk == suite_id:
        raise ValidationFailed('suite cannot be its own parent', details={'parent_id': parent_id})
    parent = db.session.get(Suite, parent_pk) if parent_pk is not None else None
    if parent is None or parent.project_id != project_id:
        raise ValidationFailed('parent suite not found in project', details={'parent_id': parent_id})
    return parent.id


def create_suite(project_id: int, name: str, parent_id: Any = None) -> int:
    name = _text(name)
    if not name:
        raise ValidationFailed('name is required', details={'name': 'required'})
    with atomic():
        _get_project(project_id)
        suite = Suite(
            project_id=project_id,
            name=name,
            parent_id=_check_parent(project_id, None, parent_id),
        )
        db.session.add(suite)
        db.session.flush()
        suite_id = suite.id
    return suite_id


def update_suite(suite_id: int, name: str, parent_id: Any = None) -> None:
    name = _text(name)
    if not name:
        raise ValidationFailed('name is required', details={'name': 'required'})
    with atomic():
        suite = db.session.get(Suite, suite_id)
        if suite is None:
            raise NotFound('suite', suite_id)
        suite.parent_id = _check_parent(suite.project_id, suite.id, parent_id)
        suite.name = name


def delete_suite(suite_id: int) -> None:
    """스위트 삭제 (소속 케이스와 그 런 이력까지 삭제, 하위 스위트는 최상위로)"""
    with atomic():
        suite = db.session.get(Suite, suite_id)
        if suite is None:
            raise NotFound('suite', suite_id)
        db.session.delete(suite)
    logger.info(f'스위트 삭제: id={suite_id}')


def get_or_create_suite(project_id: int, name: str) -> int:
    name = _text(name)
    existing = Suite.query.filter_by(project_id=project_id, name=name).first()
    if existing:
        return existing.id
    return create_suite(project_id, name)


# ============ Case Version Store ============

def build_snapshot(case_id: int, project_id: int, fields: dict, suite_name: str, steps: list[dict]) -> dict:
    """버전 스냅샷 (케이스 메타데이터 전체 + 스텝 사본)"""
    return {
        'case_id': case_id,
        'project_id': project_id,
        'title': fields['title'],
        'quality_attribute': fields['quality_attribute'],
        'category_large': fields['category_large'],
        'category_medium': fields['category_medium'],
        'preconditions': fields['preconditions'],
        'priority': fields['priority'],
        'tags': list(fields['tags']),
        'suite_id': fields['suite_id'],
        'suite_name': suite_name,
        'steps': steps,
    }


def _next_version_no(case_id: int) -> int:
    max_no = db.session.query(func.max(CaseVersion.version_no)).filter_by(case_id=case_id).scalar() or 0
    return max_no + 1


def _insert_version(case_id: int, snapshot: dict, actor_id: Optional[int]) -> CaseVersion:
    version = CaseVersion(
        case_id=case_id,
        version_no=_next_version_no(case_id),
        snapshot=snapshot,
        created_by=actor_id,
    )
    version.steps = [
        Step(
            step_no=step['step_no'],
            action=step['action'],
            input_data=step['input_data'],
            expected_result=step['expected_result'],
        )
        for step in snapshot['steps']
    ]
    db.session.add(version)
    db.session.flush()
    return version


def create_case(project_id: int, data: dict, actor_id: Optional[int] = None) -> dict:
    """
    케이스 생성 + 버전 1 생성 (하나의 트랜잭션).

    Returns:
        {'case_id', 'version_id', 'version_no'}
    """
    fields = _case_fields(data)
    if not fields['title']:
        raise ValidationFailed('title is required', details={'title': 'required'})

    with atomic():
        _get_project(project_id)
        suite = _resolve_suite(project_id, fields['suite_id'])
        fields['suite_id'] = suite.id

        now = utcnow()
        case = Case(project_id=project_id, current_version_id=None, created_at=now, updated_at=now, **fields)
        db.session.add(case)
        db.session.flush()  # case.id 필요

        snapshot = build_snapshot(case.id, project_id, fields, suite.name, normalize_steps(data.get('steps')))
        version = _insert_version(case.id, snapshot, actor_id)

        case.current_version_id = version.id
        case.updated_at = utcnow()
        result = {'case_id': case.id, 'version_id': version.id, 'version_no': version.version_no}

    logger.info(f"케이스 생성: case_id={result['case_id']} version_id={result['version_id']} title={fields['title']}")
    return result


def create_version(
    case_id: int,
    data: dict,
    actor_id: Optional[int] = None,
    expected_version_no: Optional[int] = None,
) -> dict:
    """
    케이스 수정 = 새 버전 생성.

    version_no는 항상 (해당 케이스 최대 version_no + 1). 스냅샷은 diff가 아니라
    전체 사본이며, 생성 후 케이스 행의 메타데이터와 head 포인터를 새 버전에 맞춘다.
    expected_version_no를 주면 현재 head 버전 번호와 다를 때 VersionConflict.

    Returns:
        {'version_id', 'version_no'}
    """
    fields = _case_fields(data)
    if not fields['title']:
        raise ValidationFailed('title is required', details={'title': 'required'})

    with atomic():
        case = db.session.get(Case, case_id)
        if case is None:
            raise NotFound('case', case_id)

        if expected_version_no is not None:
            head_no = None
            if case.current_version_id is not None:
                head_no = db.session.query(CaseVersion.version_no).filter_by(id=case.current_version_id).scalar()
            if head_no != int(expected_version_no):
                raise VersionConflict(case_id, int(expected_version_no), head_no)

        suite = _resolve_suite(case.project_id, fields['suite_id'])
        fields['suite_id'] = suite.id

        snapshot = build_snapshot(case.id, case.project_id, fields, suite.name, normalize_steps(data.get('steps')))
        version = _insert_version(case.id, snapshot, actor_id)

        for key, value in fields.items():
            setattr(case, key, value)
        case.current_version_id = version.id
        case.updated_at = utcnow()
        result = {'version_id': version.id, 'version_no': version.version_no}

    logger.info(f"케이스 버전 생성: case_id={case_id} version_no={result['version_no']}")
    return result


def _version_dict(version: CaseVersion) -> dict:
    snapshot = dict(version.snapshot or {})
    snapshot['steps'] = [step.to_dict() for step in version.steps]
    return {
        'id': version.id,
        'case_id': version.case_id,
        'version_no': version.version_no,
        'snapshot': snapshot,
        'created_by': version.created_by,
        'created_at': version.created_at.isoformat() if version.created_at else None,
    }


def get_version(version_id: int) -> Optional[dict]:
    """버전 조회 (스텝은 test_steps 기준으로 재구성)"""
    version = db.session.get(CaseVersion, version_id)
    if version is None:
        return None
    return _version_dict(version)


def get_case_detail(case_id: int) -> Optional[dict]:
    """케이스 + 현재 버전 + 버전 목록(최신순)"""
    case = db.session.get(Case, case_id)
    if case is None:
        return None

    versions = case.versions.order_by(CaseVersion.version_no.desc()).all()
    current_version = get_version(case.current_version_id) if case.current_version_id else None

    return {
        'case': case.to_dict(),
        'current_version': current_version,
        'versions': [{
            'id': v.id,
            'version_no': v.version_no,
            'created_by': v.created_by,
            'created_at': v.created_at.isoformat() if v.created_at else None,
        } for v in versions],
    }


def list_cases(project_id: int, suite_id: Optional[int] = None) -> list[dict]:
    query = db.session.query(Case, Suite.name).join(Suite, Suite.id == Case.suite_id).filter(
        Case.project_id == project_id
    )
    if suite_id:
        query = query.filter(Case.suite_id == suite_id)

    rows = query.order_by(Case.updated_at.desc(), Case.id.desc()).all()
    result = []
    for case, suite_name in rows:
        item = case.to_dict()
        item['suite_name'] = suite_name
        result.append(item)
    return result


def find_case_by_suite_and_title(suite_id: int, title: str) -> Optional[Case]:
    return Case.query.filter_by(suite_id=suite_id, title=_text(title)).first()


def delete_case(case_id: int) -> None:
    """
    케이스 삭제 (되돌릴 수 없음).

    모든 런에서 이 케이스를 참조하는 런케이스/결과/스텝결과를 먼저 지우고,
    케이스와 버전/스텝을 지운다.
    """
    with atomic():
        case = db.session.get(Case, case_id)
        if case is None:
            raise NotFound('case', case_id)
        removed_run_cases = 0
        for run_case in case.run_cases:
            db.session.delete(run_case)
            removed_run_cases += 1
        db.session.flush()
        db.session.delete(case)

    logger.info(f'케이스 삭제: case_id={case_id} (런케이스 {removed_run_cases}개 함께 삭제)')
