"""
CSV import / export tests.

Test blocks:
  1. Preview validation
  2. Execute import (create / new version / partial failure)
  3. Import logs
  4. Export
"""

import csv
import io

import pytest

from app.exceptions import NotFound
from app.models import Case, CaseVersion, ImportLog, ImportLogRow, Suite
from app.services import case_service, import_service
from app.utils.csv_io import CSV_COLUMNS, build_csv_text, parse_tags

HEADER = ",".join(CSV_COLUMNS)


def _csv(*rows):
    return "\n".join([HEADER, *rows]) + "\n"


LOGIN_ROWS = (
    "API,Security,Auth,Login,Login works,User exists,1,Open login page,,Page shown,High,auth",
    "API,Security,Auth,Login,Login works,User exists,2,Submit credentials,admin/admin,Logged in,High,\"auth,smoke\"",
)


# ── 1. Preview ───────────────────────────────────────────────────────────


def test_preview_valid_rows():
    preview = import_service.preview_import(_csv(*LOGIN_ROWS))

    assert preview["columns_ok"] is True
    assert preview["missing_columns"] == []
    assert (preview["total_rows"], preview["success_count"], preview["fail_count"]) == (2, 2, 0)
    assert [r["row_number"] for r in preview["rows"]] == [2, 3]
    assert preview["rows"][1]["row"]["tags"] == "auth,smoke"


def test_preview_reports_missing_columns():
    text = "suite,case_title,step_no,test_step,expected_result\nAPI,Login,1,Open,Shown\n"
    preview = import_service.preview_import(text)

    assert preview["columns_ok"] is False
    assert "priority" in preview["missing_columns"]
    assert preview["rows"][0]["status"] == "fail"
    assert preview["rows"][0]["error_message"].startswith("Missing columns:")


def test_preview_required_fields_and_numeric_step():
    preview = import_service.preview_import(_csv(
        "API,,,,Login,,1,Open,,,Medium,",
        "API,,,,Login,,abc,Open,,Shown,Medium,",
    ))

    first, second = preview["rows"]
    assert first["error_message"] == "Missing required fields: expected_result"
    assert second["error_message"] == "step_no must be a number"
    assert preview["fail_count"] == 2


def test_preview_group_rules_positive_and_unique():
    preview = import_service.preview_import(_csv(
        "API,,,,Login,,1,Open,,Shown,Medium,",
        "API,,,,Login,,1,Again,,Shown,Medium,",
        "API,,,,Login,,0,Zero,,Shown,Medium,",
        "API,,,,Login,,1.5,Half,,Shown,Medium,",
        "UI,,,,Login,,1,Other group,,Shown,Medium,",
    ))

    messages = [r["error_message"] for r in preview["rows"]]
    assert messages[0] == "duplicate step_no (1) in same suite + case_title group"
    assert messages[1] == "duplicate step_no (1) in same suite + case_title group"
    assert messages[2] == "step_no must be a positive integer"
    assert messages[3] == "step_no must be a positive integer"
    assert preview["rows"][4]["status"] == "success"


def test_preview_skips_blank_lines():
    text = HEADER + "\n\n" + LOGIN_ROWS[0] + "\n,,,,,,,,,,,\n"
    preview = import_service.preview_import(text)
    assert preview["total_rows"] == 1


def test_parse_tags():
    assert parse_tags(" a, b ,,c ") == ["a", "b", "c"]
    assert parse_tags(None) == []


# ── 2. Execute ───────────────────────────────────────────────────────────


def test_execute_creates_case_with_sorted_steps_and_tags(project):
    text = _csv(LOGIN_ROWS[1], LOGIN_ROWS[0])

    result = import_service.execute_import(project, "cases.csv", text)

    assert (result["total_rows"], result["success_count"], result["fail_count"]) == (2, 2, 0)
    case = Case.query.filter_by(title="Login works").one()
    assert case.suite.name == "API"
    assert case.priority == "High"
    assert case.tags == ["auth", "smoke"]

    version = case_service.get_version(case.current_version_id)
    assert version["version_no"] == 1
    assert [s["step_no"] for s in version["snapshot"]["steps"]] == [1, 2]
    assert version["snapshot"]["steps"][1]["input_data"] == "admin/admin"


def test_reimport_creates_new_version(project):
    import_service.execute_import(project, "v1.csv", _csv(*LOGIN_ROWS))
    edited = LOGIN_ROWS[1].replace("Logged in", "Dashboard shown")
    import_service.execute_import(project, "v2.csv", _csv(LOGIN_ROWS[0], edited))

    case = Case.query.filter_by(title="Login works").one()
    assert CaseVersion.query.filter_by(case_id=case.id).count() == 2
    version = case_service.get_version(case.current_version_id)
    assert version["version_no"] == 2
    assert version["snapshot"]["steps"][1]["expected_result"] == "Dashboard shown"
    assert Suite.query.filter_by(project_id=project, name="API").count() == 1


def test_priority_defaults_to_medium(project):
    import_service.execute_import(project, "p.csv", _csv("API,,,,No priority,,1,Open,,Shown,,"))
    assert Case.query.filter_by(title="No priority").one().priority == "Medium"


def test_failed_rows_logged_and_valid_groups_imported(project):
    text = _csv(
        LOGIN_ROWS[0],
        "API,,,,Broken,,1,Open,,,Medium,",
        "UI,,,,Other,,1,Open,,Shown,Medium,",
    )

    result = import_service.execute_import(project, "mixed.csv", text)

    assert (result["success_count"], result["fail_count"]) == (2, 1)
    rows = import_service.list_import_log_rows(result["import_log_id"])
    assert [(r["row_number"], r["status"]) for r in rows] == [(2, "success"), (3, "fail"), (4, "success")]
    assert rows[1]["error_message"].startswith("Missing required fields")
    assert {c.title for c in Case.query.all()} == {"Login works", "Other"}


def test_group_failure_marks_all_group_rows(project, monkeypatch):
    original = case_service.create_case

    def failing_create_case(project_id, data, actor_id=None):
        if data["title"] == "Explodes":
            case_service.create_case(project_id, dict(data, title=""))
        return original(project_id, data, actor_id)

    monkeypatch.setattr(import_service, "create_case", failing_create_case)

    result = import_service.execute_import(project, "boom.csv", _csv(
        "API,,,,Explodes,,1,Open,,Shown,Medium,",
        "API,,,,Explodes,,2,Close,,Closed,Medium,",
        "API,,,,Fine,,1,Open,,Shown,Medium,",
    ))

    assert (result["success_count"], result["fail_count"]) == (1, 2)
    rows = import_service.list_import_log_rows(result["import_log_id"])
    assert [r["status"] for r in rows] == ["fail", "fail", "success"]
    assert rows[0]["error_message"] == "title is required"
    assert [c.title for c in Case.query.all()] == ["Fine"]


# ── 3. Logs ──────────────────────────────────────────────────────────────


def test_import_log_listing_and_deletion(project):
    first = import_service.execute_import(project, "a.csv", _csv(LOGIN_ROWS[0]))["import_log_id"]
    second = import_service.execute_import(project, "", _csv(LOGIN_ROWS[0]))["import_log_id"]

    logs = import_service.list_import_logs()
    assert [log["id"] for log in logs] == [second, first]
    assert logs[0]["file_name"] == "import.csv"

    import_service.delete_import_log(first)
    assert [log["id"] for log in import_service.list_import_logs()] == [second]
    assert ImportLogRow.query.filter_by(import_log_id=first).count() == 0

    assert import_service.clear_import_logs() == 1
    assert ImportLog.query.count() == 0


def test_missing_import_log():
    with pytest.raises(NotFound):
        import_service.list_import_log_rows(404)
    with pytest.raises(NotFound):
        import_service.delete_import_log(404)


# ── 4. Export ────────────────────────────────────────────────────────────


def _read(text):
    return list(csv.DictReader(io.StringIO(text)))


def test_export_rows_follow_current_version(make_case, project, suite):
    res = make_case(title="Login", steps=2, tags=["auth", "smoke"], priority="High")
    detail = case_service.get_case_detail(res["case_id"])
    data = dict(detail["case"], steps=[
        {"step_no": 1, "action": "Open, then wait", "input_data": "", "expected_result": "Shown"},
    ])
    case_service.create_version(res["case_id"], data)

    rows = _read(import_service.export_cases_csv(project))

    assert len(rows) == 1
    assert rows[0]["suite"] == "API"
    assert rows[0]["case_title"] == "Login"
    assert rows[0]["test_step"] == "Open, then wait"
    assert rows[0]["tags"] == "auth,smoke"
    assert rows[0]["priority"] == "High"


def test_export_orders_by_suite_title_step(make_case, project):
    ui = case_service.create_suite(project, "UI")
    make_case(title="Zeta", steps=2, suite_id=ui)
    make_case(title="Beta", steps=2)
    make_case(title="Alpha", steps=1)

    rows = _read(import_service.export_cases_csv(project))
    assert [(r["suite"], r["case_title"], r["step_no"]) for r in rows] == [
        ("API", "Alpha", "1"),
        ("API", "Beta", "1"),
        ("API", "Beta", "2"),
        ("UI", "Zeta", "1"),
        ("UI", "Zeta", "2"),
    ]

    ui_only = _read(import_service.export_cases_csv(project, ui))
    assert {r["case_title"] for r in ui_only} == {"Zeta"}


def test_export_case_without_steps_has_one_row(make_case, project):
    make_case(title="Empty", steps=[])
    rows = _read(import_service.export_cases_csv(project))
    assert len(rows) == 1
    assert rows[0]["step_no"] == ""
    assert rows[0]["test_step"] == ""


def test_export_can_be_reimported(make_case, project):
    make_case(title="Login", steps=2)
    exported = import_service.export_cases_csv(project)

    preview = import_service.preview_import(exported)
    assert preview["fail_count"] == 0

    import_service.execute_import(project, "roundtrip.csv", exported)
    case = Case.query.filter_by(title="Login").one()
    assert CaseVersion.query.filter_by(case_id=case.id).count() == 2


def test_build_csv_text_header_only():
    assert build_csv_text(["a", "b"], []) == "a,b\n"
