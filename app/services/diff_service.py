"""케이스 버전 비교 (필드 단위 + 스텝 단위)"""
from __future__ import annotations

import json
from typing import Any, Optional

from app.exceptions import VersionNotFound
from app.services.case_service import get_version

DIFF_FIELDS = (
    'title',
    'quality_attribute',
    'category_large',
    'category_medium',
    'preconditions',
    'priority',
    'tags',
    'suite_id',
)


def _serialized(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def _load(version_id: int, case_id: Optional[int]) -> dict:
    version = get_version(version_id)
    if version is None or (case_id is not None and version['case_id'] != case_id):
        raise VersionNotFound(version_id)
    return version


def diff_snapshots(from_snapshot: dict, to_snapshot: dict) -> dict:
    """
    두 스냅샷 비교.

    스텝은 리스트 위치가 아니라 step_no로 매칭한다. 양쪽에 동일하게 있는 스텝은
    어느 목록에도 나오지 않는다. 각 목록은 step_no 오름차순.
    """
    fields = [
        {'field': field, 'from': from_snapshot.get(field), 'to': to_snapshot.get(field)}
        for field in DIFF_FIELDS
        if _serialized(from_snapshot.get(field)) != _serialized(to_snapshot.get(field))
    ]

    from_steps = {step['step_no']: step for step in from_snapshot.get('steps') or []}
    to_steps = {step['step_no']: step for step in to_snapshot.get('steps') or []}

    steps_added = [to_steps[no] for no in sorted(to_steps) if no not in from_steps]
    steps_removed = [from_steps[no] for no in sorted(from_steps) if no not in to_steps]
    steps_changed = [
        {'step_no': no, 'from': from_steps[no], 'to': to_steps[no]}
        for no in sorted(to_steps)
        if no in from_steps and _serialized(from_steps[no]) != _serialized(to_steps[no])
    ]

    return {
        'fields': fields,
        'steps_added': steps_added,
        'steps_removed': steps_removed,
        'steps_changed': steps_changed,
    }


def diff_versions(from_version_id: int, to_version_id: int, case_id: Optional[int] = None) -> dict:
    """
    두 버전 비교. 어느 한쪽이라도 없으면(또는 case_id가 주어졌는데 다른 케이스의
    버전이면) VersionNotFound.
    """
    from_version = _load(from_version_id, case_id)
    to_version = _load(to_version_id, case_id)
    return diff_snapshots(from_version['snapshot'], to_version['snapshot'])
