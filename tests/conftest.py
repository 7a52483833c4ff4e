"""
Shared pytest fixtures.

Provides:
    - app: Flask application (session-scoped, TestingConfig / in-memory SQLite)
    - _setup_db: table creation/teardown (session-scoped)
    - session: per-test rollback + table recreate (autouse)
    - client: anonymous test client
    - user / auth_client: a tester account and a logged-in client
    - project / suite: pre-created rows
    - make_case: factory that creates a case through case_service
"""

import pytest

from app import create_app, db as _db
from app.models import User
from app.services import case_service


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def user():
    u = User(username="tester", display_name="Test User", role="tester")
    u.set_password("secret123")
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture()
def auth_client(client, user):
    """Test client with a logged-in session."""
    res = client.post("/api/auth/login", json={"username": "tester", "password": "secret123"})
    assert res.status_code == 200
    return client


@pytest.fixture()
def project():
    project_id = case_service.create_project("Demo Project")
    return project_id


@pytest.fixture()
def suite(project):
    return case_service.create_suite(project, "API")


def build_steps(count, prefix="Step"):
    return [
        {
            "step_no": no,
            "action": f"{prefix} {no}",
            "input_data": f"input {no}",
            "expected_result": f"expected {no}",
        }
        for no in range(1, count + 1)
    ]


@pytest.fixture()
def make_case(project, suite):
    """Factory: make_case(title="Login", steps=2, **fields) -> create_case result dict."""

    def _make(title="Login", steps=2, project_id=None, suite_id=None, actor_id=None, **fields):
        data = {
            "suite_id": suite_id or suite,
            "title": title,
            "priority": "Medium",
            "tags": [],
            "steps": build_steps(steps) if isinstance(steps, int) else steps,
        }
        data.update(fields)
        return case_service.create_case(project_id or project, data, actor_id=actor_id)

    return _make
