"""
CSV 가져오기/내보내기.

가져오기는 (suite, case_title) 단위로 행을 묶어 케이스 1건으로 저장한다.
이미 같은 스위트에 같은 제목의 케이스가 있으면 새 버전을 만들고, 없으면 케이스를 만든다.
"""
from __future__ import annotations

import logging
import math
from typing import Optional

from app import db
from app.exceptions import NotFound, ServiceError
from app.models import Case, ImportLog, ImportLogRow, Step, Suite
from app.services.case_service import (
    DEFAULT_PRIORITY, create_case, create_version, find_case_by_suite_and_title, get_or_create_suite,
)
from app.utils.csv_io import CSV_COLUMNS, build_csv_text, parse_csv_with_validation, parse_number, parse_tags
from app.utils.db import atomic

logger = logging.getLogger(__name__)


def _group_key(row: dict) -> tuple[str, str]:
    return (row.get('suite') or '').strip(), (row.get('case_title') or '').strip()


def _validate_groups(preview: list[dict]) -> list[dict]:
    """
    같은 (suite, case_title) 그룹 안에서 step_no 검증.

    - step_no는 양의 정수
    - 그룹 안에서 step_no 중복 불가 (중복된 행 전부 실패)
    이미 실패한 행의 메시지는 덮어쓰지 않는다.
    """
    rows = [dict(item) for item in preview]

    def mark_fail(index: int, message: str) -> None:
        if rows[index]['status'] == 'fail':
            return
        rows[index]['status'] = 'fail'
        rows[index]['error_message'] = message

    groups: dict[tuple[str, str], list[int]] = {}
    for index, item in enumerate(rows):
        if item['status'] != 'success':
            continue
        groups.setdefault(_group_key(item['row']), []).append(index)

    for indexes in groups.values():
        step_buckets: dict[int, list[int]] = {}
        for index in indexes:
            step_no = parse_number(rows[index]['row'].get('step_no'))
            if math.isnan(step_no) or not step_no.is_integer() or step_no <= 0:
                mark_fail(index, 'step_no must be a positive integer')
                continue
            step_buckets.setdefault(int(step_no), []).append(index)

        for step_no, bucket in step_buckets.items():
            if len(bucket) <= 1:
                continue
            for index in bucket:
                mark_fail(index, f'duplicate step_no ({step_no}) in same suite + case_title group')

    return rows


def preview_import(csv_text: str) -> dict:
    """가져오기 미리보기 (DB 쓰기 없음)"""
    parsed = parse_csv_with_validation(csv_text)
    rows = _validate_groups(parsed['preview'])
    success_count = sum(1 for row in rows if row['status'] == 'success')

    return {
        'columns_ok': parsed['columns_ok'],
        'missing_columns': parsed['missing_columns'],
        'total_rows': len(rows),
        'success_count': success_count,
        'fail_count': len(rows) - success_count,
        'rows': rows,
    }


def _group_payload(suite_id: int, items: list[dict]) -> dict:
    first = items[0]['row']
    steps = sorted((
        {
            'step_no': int(parse_number(item['row'].get('step_no'))),
            'action': item['row'].get('test_step'),
            'input_data': item['row'].get('input_data'),
            'expected_result': item['row'].get('expected_result'),
        }
        for item in items
    ), key=lambda s: s['step_no'])

    tags = []
    for item in items:
        for tag in parse_tags(item['row'].get('tags')):
            if tag not in tags:
                tags.append(tag)

    return {
        'suite_id': suite_id,
        'title': (first.get('case_title') or '').strip(),
        'quality_attribute': first.get('quality_attribute'),
        'category_large': first.get('category_large'),
        'category_medium': first.get('category_medium'),
        'preconditions': first.get('preconditions'),
        'priority': first.get('priority') or DEFAULT_PRIORITY,
        'tags': tags,
        'steps': steps,
    }


def execute_import(project_id: int, file_name: str, csv_text: str, actor_id: Optional[int] = None) -> dict:
    """
    CSV 가져오기 실행.

    검증 실패 행은 로그에 실패로 남기고, 나머지는 그룹별로 케이스 생성/새 버전 생성.
    한 그룹에서 오류가 나면 그 그룹의 행만 실패 처리하고 다음 그룹을 계속 진행한다.

    Returns:
        {'import_log_id', 'total_rows', 'success_count', 'fail_count'}
    """
    parsed = parse_csv_with_validation(csv_text)
    rows = _validate_groups(parsed['preview'])

    with atomic():
        import_log = ImportLog(
            file_name=(file_name or '').strip() or 'import.csv',
            total_rows=len(rows),
            success_count=0,
            fail_count=0,
            created_by=actor_id,
        )
        db.session.add(import_log)
        db.session.flush()
        import_log_id = import_log.id

    log_rows: list[ImportLogRow] = []
    groups: dict[tuple[str, str], list[dict]] = {}
    for item in rows:
        if item['status'] == 'fail':
            log_rows.append(ImportLogRow(
                row_number=item['row_number'],
                status='fail',
                error_message=item['error_message'] or 'Validation failed',
            ))
            continue
        groups.setdefault(_group_key(item['row']), []).append(item)

    created = updated = 0
    for (suite_name, title), items in groups.items():
        try:
            suite_id = get_or_create_suite(project_id, suite_name)
            payload = _group_payload(suite_id, items)
            existing = find_case_by_suite_and_title(suite_id, title)
            if existing:
                create_version(existing.id, payload, actor_id)
                updated += 1
            else:
                create_case(project_id, payload, actor_id)
                created += 1
        except ServiceError as e:
            logger.warning(f'가져오기 그룹 실패: suite={suite_name} title={title} ({e})')
            log_rows.extend(
                ImportLogRow(row_number=item['row_number'], status='fail', error_message=str(e))
                for item in items
            )
            continue

        log_rows.extend(
            ImportLogRow(row_number=item['row_number'], status='success', error_message=None)
            for item in items
        )

    success_count = sum(1 for row in log_rows if row.status == 'success')
    fail_count = len(log_rows) - success_count

    with atomic():
        import_log = db.session.get(ImportLog, import_log_id)
        for log_row in log_rows:
            log_row.import_log_id = import_log_id
            db.session.add(log_row)
        import_log.success_count = success_count
        import_log.fail_count = fail_count

    logger.info(
        f'CSV 가져오기 완료: log_id={import_log_id} file={file_name} '
        f'성공 {success_count} / 실패 {fail_count} (케이스 생성 {created}, 새 버전 {updated})'
    )
    return {
        'import_log_id': import_log_id,
        'total_rows': len(rows),
        'success_count': success_count,
        'fail_count': fail_count,
    }


def list_import_logs() -> list[dict]:
    return [log.to_dict() for log in ImportLog.query.order_by(ImportLog.id.desc()).all()]


def list_import_log_rows(import_log_id: int) -> list[dict]:
    import_log = db.session.get(ImportLog, import_log_id)
    if import_log is None:
        raise NotFound('import_log', import_log_id)
    return [row.to_dict() for row in import_log.rows.order_by(ImportLogRow.row_number).all()]


def delete_import_log(import_log_id: int) -> None:
    with atomic():
        import_log = db.session.get(ImportLog, import_log_id)
        if import_log is None:
            raise NotFound('import_log', import_log_id)
        db.session.delete(import_log)


def clear_import_logs() -> int:
    """가져오기 로그 전체 삭제"""
    with atomic():
        logs = ImportLog.query.all()
        for import_log in logs:
            db.session.delete(import_log)
    logger.info(f'가져오기 로그 전체 삭제: {len(logs)}건')
    return len(logs)


def export_cases_csv(project_id: int, suite_id: Optional[int] = None) -> str:
    """
    현재 버전 기준 케이스 CSV.

    스텝 1개당 1행, 스텝이 없는 케이스는 스텝 칸이 빈 1행.
    정렬: 스위트 이름, 케이스 제목, step_no
    """
    query = db.session.query(Case, Suite.name, Step).join(
        Suite, Suite.id == Case.suite_id
    ).outerjoin(
        Step, Step.case_version_id == Case.current_version_id
    ).filter(Case.project_id == project_id)
    if suite_id:
        query = query.filter(Case.suite_id == suite_id)

    rows = query.order_by(Suite.name, Case.title, Step.step_no).all()

    csv_rows = [{
        'suite': suite_name,
        'quality_attribute': case.quality_attribute or '',
        'category_large': case.category_large or '',
        'category_medium': case.category_medium or '',
        'case_title': case.title,
        'preconditions': case.preconditions or '',
        'step_no': step.step_no if step else '',
        'test_step': step.action if step else '',
        'input_data': (step.input_data or '') if step else '',
        'expected_result': step.expected_result if step else '',
        'priority': case.priority or DEFAULT_PRIORITY,
        'tags': ','.join(case.tags or []),
    } for case, suite_name, step in rows]

    return build_csv_text(CSV_COLUMNS, csv_rows)
