"""
Shared pytest fixtures for the NexusQA test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project / suite: Pre-created catalog entities
    - make_case: factory for test cases with steps and requirement links
"""

import pytest

from nexusqa import create_app
from nexusqa.models import db as _db
from nexusqa.models.project import Project, Requirement
from nexusqa.models.testing import TestCase, TestStep, TestSuite


# ── App & DB fixtures ────────────────────────────────────────────────────


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
        app.config["AUTOMATION_API_KEY"] = ""
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    proj = Project(name="Mobile Banking", strategy="Risk-based")
    _db.session.add(proj)
    _db.session.commit()
    return proj


@pytest.fixture()
def suite(project):
    s = TestSuite(project_id=project.id, title="Login")
    _db.session.add(s)
    _db.session.commit()
    return s


@pytest.fixture()
def make_case(suite):
    """Factory: ``make_case("Title", steps=[(action, expected), ...], requirements=[req])``."""

    def _make(title="Login with valid credentials", steps=(), requirements=(), suite_obj=None):
        tc = TestCase(suite_id=(suite_obj or suite).id, title=title)
        _db.session.add(tc)
        _db.session.flush()
        for order, (action, expected) in enumerate(steps, start=1):
            _db.session.add(TestStep(test_case_id=tc.id, order=order,
                                     action=action, expected=expected))
        tc.requirements = list(requirements)
        _db.session.commit()
        return tc

    return _make


@pytest.fixture()
def make_requirement(project):
    def _make(code, title=None, project_obj=None):
        req = Requirement(project_id=(project_obj or project).id, code=code,
                          title=title or f"Requirement {code}")
        _db.session.add(req)
        _db.session.commit()
        return req

    return _make
