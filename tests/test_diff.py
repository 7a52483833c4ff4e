"""Version diff tests."""

import pytest

from app.exceptions import VersionNotFound
from app.services import case_service, diff_service
from conftest import build_steps


def _new_version(case_id, **changes):
    detail = case_service.get_case_detail(case_id)
    data = dict(detail["case"])
    data["steps"] = detail["current_version"]["snapshot"]["steps"]
    data.update(changes)
    return case_service.create_version(case_id, data)


def _is_empty(diff):
    return not (diff["fields"] or diff["steps_added"] or diff["steps_removed"] or diff["steps_changed"])


def test_diff_with_itself_is_empty(make_case):
    res = make_case(steps=3)
    diff = diff_service.diff_versions(res["version_id"], res["version_id"])
    assert _is_empty(diff)


def test_title_edit_shows_only_title(make_case):
    res = make_case(title="Login", steps=2)
    v2 = _new_version(res["case_id"], title="Login with SSO")

    detail = case_service.get_case_detail(res["case_id"])
    assert len(detail["versions"]) == 2
    assert detail["case"]["current_version_id"] == v2["version_id"]

    diff = diff_service.diff_versions(res["version_id"], v2["version_id"])
    assert diff["fields"] == [{"field": "title", "from": "Login", "to": "Login with SSO"}]
    assert diff["steps_added"] == []
    assert diff["steps_removed"] == []
    assert diff["steps_changed"] == []


def test_steps_matched_by_step_no(make_case):
    res = make_case(steps=[
        {"step_no": 1, "action": "open", "expected_result": "opened"},
        {"step_no": 2, "action": "click", "expected_result": "clicked"},
        {"step_no": 3, "action": "close", "expected_result": "closed"},
    ])
    v2 = _new_version(res["case_id"], steps=[
        {"step_no": 1, "action": "open", "expected_result": "opened"},
        {"step_no": 3, "action": "close quickly", "expected_result": "closed"},
        {"step_no": 4, "action": "logout", "expected_result": "logged out"},
    ])

    diff = diff_service.diff_versions(res["version_id"], v2["version_id"])

    assert diff["fields"] == []
    assert [s["step_no"] for s in diff["steps_added"]] == [4]
    assert [s["step_no"] for s in diff["steps_removed"]] == [2]
    assert len(diff["steps_changed"]) == 1
    changed = diff["steps_changed"][0]
    assert changed["step_no"] == 3
    assert changed["from"]["action"] == "close"
    assert changed["to"]["action"] == "close quickly"


def test_renumbered_steps_are_not_compared_by_position(make_case):
    res = make_case(steps=[{"step_no": 1, "action": "a", "expected_result": "x"}])
    v2 = _new_version(res["case_id"], steps=[{"step_no": 2, "action": "a", "expected_result": "x"}])

    diff = diff_service.diff_versions(res["version_id"], v2["version_id"])
    assert [s["step_no"] for s in diff["steps_added"]] == [2]
    assert [s["step_no"] for s in diff["steps_removed"]] == [1]
    assert diff["steps_changed"] == []


def test_diff_is_symmetric(make_case):
    res = make_case(title="A", priority="Low", steps=2)
    v2 = _new_version(res["case_id"], title="B", priority="High", tags=["x"], steps=build_steps(3, prefix="Other"))

    forward = diff_service.diff_versions(res["version_id"], v2["version_id"])
    backward = diff_service.diff_versions(v2["version_id"], res["version_id"])

    assert [(f["field"], f["from"], f["to"]) for f in forward["fields"]] == \
        [(f["field"], f["to"], f["from"]) for f in backward["fields"]]
    assert forward["steps_added"] == backward["steps_removed"]
    assert forward["steps_removed"] == backward["steps_added"]
    assert [(c["step_no"], c["from"], c["to"]) for c in forward["steps_changed"]] == \
        [(c["step_no"], c["to"], c["from"]) for c in backward["steps_changed"]]


def test_tags_compared_by_serialized_value(make_case):
    res = make_case(tags=["a", "b"])
    v2 = _new_version(res["case_id"], tags=["b", "a"])

    diff = diff_service.diff_versions(res["version_id"], v2["version_id"])
    assert diff["fields"] == [{"field": "tags", "from": ["a", "b"], "to": ["b", "a"]}]


def test_suite_move_reported(make_case, project, suite):
    ui = case_service.create_suite(project, "UI")
    res = make_case()
    v2 = _new_version(res["case_id"], suite_id=ui)

    diff = diff_service.diff_versions(res["version_id"], v2["version_id"])
    assert diff["fields"] == [{"field": "suite_id", "from": suite, "to": ui}]


def test_missing_version_raises(make_case):
    res = make_case()
    with pytest.raises(VersionNotFound):
        diff_service.diff_versions(res["version_id"], 9999)
    with pytest.raises(VersionNotFound):
        diff_service.diff_versions(9999, res["version_id"])


def test_version_from_other_case_rejected_when_case_given(make_case):
    a = make_case(title="A")
    b = make_case(title="B")
    with pytest.raises(VersionNotFound):
        diff_service.diff_versions(a["version_id"], b["version_id"], case_id=a["case_id"])
