"""
Run snapshot binding and result engine tests.

Test blocks:
  1. Run creation binds head versions
  2. Binding survives later edits
  3. Run maintenance (status / rename / delete)
  4. Overall status rules
  5. Result upsert
"""

import logging

import pytest

from app import db
from app.exceptions import ConstraintViolation, NotFound, ValidationFailed
from app.models import Case, CaseVersion, Result, Run, RunCase, StepResult
from app.services import case_service, run_service
from conftest import build_steps


def _new_version(case_id, **changes):
    detail = case_service.get_case_detail(case_id)
    data = dict(detail["case"])
    data["steps"] = detail["current_version"]["snapshot"]["steps"]
    data.update(changes)
    return case_service.create_version(case_id, data)


def _run_case(run_id, case_id):
    return RunCase.query.filter_by(run_id=run_id, case_id=case_id).one()


# ── 1. Creation ──────────────────────────────────────────────────────────


def test_create_run_binds_current_versions(make_case, project):
    a = make_case(title="A")
    b = make_case(title="B")
    b2 = _new_version(b["case_id"], title="B2")

    run_id = run_service.create_run(project, "Sprint 1", "1.0.0", [a["case_id"], b["case_id"]])

    run = db.session.get(Run, run_id)
    assert run.status == "open"
    assert run.release_version == "1.0.0"
    assert _run_case(run_id, a["case_id"]).case_version_id == a["version_id"]
    assert _run_case(run_id, b["case_id"]).case_version_id == b2["version_id"]
    assert {rc.status for rc in run.run_cases} == {"untested"}


def test_duplicate_and_foreign_case_ids_ignored(make_case, project):
    a = make_case(title="A")
    other_project = case_service.create_project("Other")
    other_suite = case_service.create_suite(other_project, "S")
    foreign = make_case(title="Foreign", project_id=other_project, suite_id=other_suite)

    run_id = run_service.create_run(
        project, "R", "", [a["case_id"], a["case_id"], foreign["case_id"], 9999],
    )

    assert RunCase.query.filter_by(run_id=run_id).count() == 1


def test_case_without_head_is_skipped(make_case, project, caplog):
    a = make_case(title="A")
    headless = make_case(title="Headless")
    case = db.session.get(Case, headless["case_id"])
    case.current_version_id = None
    db.session.commit()

    with caplog.at_level(logging.WARNING, logger="app.services.run_service"):
        run_id = run_service.create_run(project, "R", "", [a["case_id"], headless["case_id"]])

    assert [rc.case_id for rc in RunCase.query.filter_by(run_id=run_id)] == [a["case_id"]]
    assert any("head" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)


def test_create_run_with_no_cases_is_allowed_by_service(project):
    run_id = run_service.create_run(project, "Empty", "", [])
    assert RunCase.query.filter_by(run_id=run_id).count() == 0


def test_create_run_unknown_project():
    with pytest.raises(NotFound):
        run_service.create_run(4242, "R", "", [1])
    assert Run.query.count() == 0


def test_create_run_requires_name(project):
    with pytest.raises(ValidationFailed):
        run_service.create_run(project, "  ", "", [])


# ── 2. Binding is permanent ──────────────────────────────────────────────


def test_run_stays_on_bound_version_after_edit(make_case, project):
    res = make_case(title="Login", steps=2)
    v2 = _new_version(res["case_id"], title="Login v2", steps=build_steps(2, prefix="Second"))
    run_id = run_service.create_run(project, "R", "", [res["case_id"]])

    _new_version(res["case_id"], title="Login v3", steps=build_steps(4, prefix="Third"))

    run_case = _run_case(run_id, res["case_id"])
    assert run_case.case_version_id == v2["version_id"]

    execution = run_service.get_run_case_execution(run_case.id)
    assert execution["snapshot"]["version_no"] == 2
    assert [s["action"] for s in execution["snapshot"]["snapshot"]["steps"]] == ["Second 1", "Second 2"]
    assert execution["result"] is None


def test_run_detail_reports_bound_version_numbers(make_case, project):
    a = make_case(title="A")
    b = make_case(title="B")
    run_id = run_service.create_run(project, "R", "", [a["case_id"], b["case_id"]])

    _new_version(a["case_id"], title="A edited")

    detail = run_service.get_run_detail(run_id)
    by_case = {c["case_id"]: c for c in detail["cases"]}
    assert by_case[a["case_id"]]["version_no"] == 1
    assert by_case[b["case_id"]]["version_no"] == 1
    assert by_case[a["case_id"]]["case_title"] == "A edited"
    assert by_case[a["case_id"]]["result_comment"] is None


def test_bound_version_cannot_be_deleted_alone(make_case, project):
    from app.utils.db import atomic

    res = make_case()
    run_service.create_run(project, "R", "", [res["case_id"]])

    with pytest.raises(ConstraintViolation):
        with atomic():
            db.session.delete(db.session.get(CaseVersion, res["version_id"]))

    assert db.session.get(CaseVersion, res["version_id"]) is not None


def test_run_case_execution_missing():
    assert run_service.get_run_case_execution(777) is None
    assert run_service.get_run_detail(777) is None


# ── 3. Maintenance ───────────────────────────────────────────────────────


def test_update_run_status_toggles_flag_only(make_case, project):
    res = make_case()
    run_id = run_service.create_run(project, "R", "", [res["case_id"]])

    run_service.update_run_status(run_id, "closed")
    assert db.session.get(Run, run_id).status == "closed"
    assert _run_case(run_id, res["case_id"]).status == "untested"

    run_service.update_run_status(run_id, "open")
    assert db.session.get(Run, run_id).status == "open"


def test_update_run_status_rejects_unknown(project):
    run_id = run_service.create_run(project, "R", "", [])
    with pytest.raises(ValidationFailed):
        run_service.update_run_status(run_id, "archived")
    with pytest.raises(NotFound):
        run_service.update_run_status(999, "closed")


def test_update_run_renames(project):
    run_id = run_service.create_run(project, "R", "", [])
    run_service.update_run(run_id, "Release run", "2.0")
    run = db.session.get(Run, run_id)
    assert (run.name, run.release_version) == ("Release run", "2.0")


def test_delete_run_keeps_cases_and_other_runs(make_case, project):
    res = make_case()
    r1 = run_service.create_run(project, "R1", "", [res["case_id"]])
    r2 = run_service.create_run(project, "R2", "", [res["case_id"]])
    run_service.save_result(_run_case(r1, res["case_id"]).id, "", [{"step_no": 1, "status": "fail"}])

    run_service.delete_run(r1)

    assert db.session.get(Run, r1) is None
    assert RunCase.query.filter_by(run_id=r1).count() == 0
    assert Result.query.count() == 0
    assert RunCase.query.filter_by(run_id=r2).count() == 1
    assert db.session.get(Case, res["case_id"]) is not None
    assert CaseVersion.query.filter_by(case_id=res["case_id"]).count() == 1


def test_list_runs_newest_first_with_counts(make_case, project):
    a = make_case(title="A")
    b = make_case(title="B")
    first = run_service.create_run(project, "First", "", [a["case_id"]])
    second = run_service.create_run(project, "Second", "", [a["case_id"], b["case_id"]])

    runs = run_service.list_runs(project)
    assert [(r["id"], r["case_count"]) for r in runs] == [(second, 2), (first, 1)]


# ── 4. Overall status ────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "statuses, expected",
    [
        (["pass", "fail"], "fail"),
        (["pass", "pass"], "pass"),
        ([], "untested"),
        (["pass", "untested"], "blocked"),
        (["blocked", "pass"], "blocked"),
        (["untested", "untested"], "untested"),
        (["blocked", "fail", "untested"], "fail"),
    ],
)
def test_calc_overall_status(statuses, expected):
    assert run_service.calc_overall_status(statuses) == expected
    assert run_service.calc_overall_status(list(reversed(statuses))) == expected


# ── 5. Result upsert ─────────────────────────────────────────────────────


def test_save_result_sets_run_case_status(make_case, project):
    res = make_case(steps=2)
    run_id = run_service.create_run(project, "R", "", [res["case_id"]])
    run_case = _run_case(run_id, res["case_id"])

    saved = run_service.save_result(
        run_case.id,
        "login broken",
        [{"step_no": 1, "status": "pass"}, {"step_no": 2, "status": "fail", "comment": "500"}],
    )

    assert saved["overall_status"] == "fail"
    assert db.session.get(RunCase, run_case.id).status == "fail"
    result = db.session.get(Result, saved["result_id"])
    assert result.comment == "login broken"
    assert [(s.step_no, s.status, s.comment) for s in result.step_results] == [(1, "pass", ""), (2, "fail", "500")]


def test_save_result_twice_replaces_step_results(make_case, project):
    res = make_case(steps=3)
    run_id = run_service.create_run(project, "R", "", [res["case_id"]])
    run_case_id = _run_case(run_id, res["case_id"]).id

    first = run_service.save_result(run_case_id, "first", [
        {"step_no": 1, "status": "fail"},
        {"step_no": 2, "status": "fail"},
        {"step_no": 3, "status": "fail"},
    ])
    second = run_service.save_result(run_case_id, "second", [
        {"step_no": 1, "status": "pass"},
        {"step_no": 2, "status": "pass"},
    ])

    assert first["result_id"] == second["result_id"]
    assert Result.query.count() == 1
    assert StepResult.query.count() == 2
    assert db.session.get(RunCase, run_case_id).status == "pass"

    execution = run_service.get_run_case_execution(run_case_id)
    assert execution["result"]["comment"] == "second"
    assert [s["status"] for s in execution["result"]["step_results"]] == ["pass", "pass"]


def test_save_result_with_no_steps_is_untested(make_case, project):
    res = make_case()
    run_id = run_service.create_run(project, "R", "", [res["case_id"]])
    saved = run_service.save_result(_run_case(run_id, res["case_id"]).id, "", [])
    assert saved["overall_status"] == "untested"


def test_save_result_rejects_unknown_status(make_case, project):
    res = make_case()
    run_id = run_service.create_run(project, "R", "", [res["case_id"]])
    run_case_id = _run_case(run_id, res["case_id"]).id

    with pytest.raises(ValidationFailed):
        run_service.save_result(run_case_id, "", [{"step_no": 1, "status": "skipped"}])

    assert Result.query.count() == 0
    assert db.session.get(RunCase, run_case_id).status == "untested"


def test_save_result_missing_run_case():
    with pytest.raises(NotFound):
        run_service.save_result(31337, "", [{"step_no": 1, "status": "pass"}])


def test_save_result_records_executor(make_case, project, user):
    res = make_case()
    run_id = run_service.create_run(project, "R", "", [res["case_id"]], actor_id=user.id)
    saved = run_service.save_result(
        _run_case(run_id, res["case_id"]).id, "", [{"step_no": 1, "status": "pass"}], actor_id=user.id,
    )
    result = db.session.get(Result, saved["result_id"])
    assert result.executed_by == user.id
    assert result.executed_at is not None


def test_failed_result_save_keeps_previous_result(make_case, project):
    res = make_case(steps=1)
    run_id = run_service.create_run(project, "R", "", [res["case_id"]])
    run_case_id = _run_case(run_id, res["case_id"]).id
    saved = run_service.save_result(run_case_id, "first", [{"step_no": 1, "status": "pass"}])

    with pytest.raises(ConstraintViolation) as exc:
        run_service.save_result(run_case_id, "second", [
            {"step_no": 1, "status": "fail"},
            {"step_no": 1, "status": "pass"},
        ])

    assert "UNIQUE" not in str(exc.value)
    db.session.expire_all()
    assert db.session.get(RunCase, run_case_id).status == "pass"
    result = db.session.get(Result, saved["result_id"])
    assert result.comment == "first"
    assert [(s.step_no, s.status) for s in result.step_results] == [(1, "pass")]
    assert StepResult.query.count() == 1
