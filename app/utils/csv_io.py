"""케이스 CSV 파싱/생성"""
from __future__ import annotations

import csv
import io
import math

CSV_COLUMNS = (
    'suite',
    'quality_attribute',
    'category_large',
    'category_medium',
    'case_title',
    'preconditions',
    'step_no',
    'test_step',
    'input_data',
    'expected_result',
    'priority',
    'tags',
)

REQUIRED_FIELDS = ('suite', 'case_title', 'step_no', 'test_step', 'expected_result')


def parse_number(value) -> float:
    """숫자 변환 (실패하거나 유한하지 않으면 nan)"""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return math.nan
    return number if math.isfinite(number) else math.nan


def _read_rows(csv_text: str) -> tuple[list[str], list[dict]]:
    # utf-8-sig로 저장된 엑셀 CSV의 BOM 제거
    text = (csv_text or '').lstrip('\ufeff')
    reader = csv.reader(io.StringIO(text))

    header = None
    rows = []
    for record in reader:
        cells = [cell.strip() for cell in record]
        if not any(cells):
            continue
        if header is None:
            header = cells
            continue
        # 열 개수가 헤더와 달라도 허용 (부족한 칸은 빈 값, 넘치는 칸은 버림)
        row = {name: (cells[idx] if idx < len(cells) else '') for idx, name in enumerate(header) if name}
        rows.append(row)
    return header or [], rows


def parse_csv_with_validation(csv_text: str) -> dict:
    """
    CSV 파싱 + 행 단위 검증.

    Returns:
        {
            'rows': [dict, ...],
            'preview': [{'row_number', 'row', 'status', 'error_message'}, ...],
            'columns_ok': bool,
            'missing_columns': [str, ...],
        }
    """
    header, rows = _read_rows(csv_text)
    missing_columns = [col for col in CSV_COLUMNS if col not in header]
    columns_ok = not missing_columns

    preview = []
    for index, row in enumerate(rows):
        row_number = index + 2  # 헤더가 1행
        missing = [field for field in REQUIRED_FIELDS if not (row.get(field) or '').strip()]

        if missing:
            status, error_message = 'fail', f"Missing required fields: {', '.join(missing)}"
        elif math.isnan(parse_number(row.get('step_no'))):
            status, error_message = 'fail', 'step_no must be a number'
        elif not columns_ok:
            status, error_message = 'fail', f"Missing columns: {', '.join(missing_columns)}"
        else:
            status, error_message = 'success', None

        preview.append({
            'row_number': row_number,
            'row': row,
            'status': status,
            'error_message': error_message,
        })

    return {
        'rows': rows,
        'preview': preview,
        'columns_ok': columns_ok,
        'missing_columns': missing_columns,
    }


def parse_tags(raw_tags) -> list[str]:
    return [tag.strip() for tag in str(raw_tags or '').split(',') if tag.strip()]


def build_csv_text(columns, rows: list[dict]) -> str:
    """헤더 + 행 → CSV 문자열 (쉼표/따옴표/줄바꿈 포함 칸만 따옴표 처리)"""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')
    writer.writerow(columns)
    for row in rows:
        writer.writerow(['' if row.get(col) is None else row.get(col) for col in columns])
    return output.getvalue()
