"""
Shared pytest fixtures for the PropMan test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - property_, users, group: committed directory rows
    - make_project: factory that creates a project through the workflow engine

Seed rows are COMMITTED: the workflow engine rolls the session back on every
failure, which would otherwise discard uncommitted fixtures mid-test.
"""

import pytest

from propman import create_app
from propman.models import db as _db
from propman.models.directory import ApprovalGroup, Property, User
from propman.models.project import PENDING_APPROVAL


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Directory fixtures ───────────────────────────────────────────────────


def _make_user(name, level, role="manager", archived=False):
    user = User(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@example.com",
        approval_level=level,
        role=role,
        permissions=[],
        is_archived=archived,
    )
    _db.session.add(user)
    return user


@pytest.fixture()
def property_():
    prop = Property(name="Harbour View Apartments", address="12 Quay St")
    _db.session.add(prop)
    _db.session.commit()
    return prop


@pytest.fixture()
def users():
    """One committed user per approval level plus an archived level-3 user."""
    created = {
        "creator": _make_user("Casey Creator", 1, role="user"),
        "l1": _make_user("Lee One", 1),
        "l2": _make_user("Morgan Two", 2),
        "l3": _make_user("Jordan Three", 3, role="admin"),
        "archived": _make_user("Avery Archived", 3, archived=True),
    }
    _db.session.commit()
    return created


@pytest.fixture()
def group(users):
    """Level-2 approval group containing the level-1 and level-2 users."""
    grp = ApprovalGroup(
        name="Level 2 Approvers",
        level=2,
        user_ids=[users["l1"].id, users["l2"].id],
        description="Management level approval group",
    )
    _db.session.add(grp)
    _db.session.commit()
    return grp


@pytest.fixture()
def project_draft(property_, users):
    """A valid single-approver draft; tests override keys as needed."""
    return {
        "name": "Roof replacement",
        "description": "Replace the north roof membrane",
        "category": "Maintenance",
        "property_id": property_.id,
        "budget": "10000",
        "start_date": "2025-03-01",
        "end_date": "2025-06-30",
        "priority": "high",
        "approval_type": "single",
        "approver_id": users["l3"].id,
        "funding_details": [
            {"type": "deposit", "amount": "3000", "date": "2025-03-01"},
            {"type": "progress", "amount": "4000", "date": "2025-04-15"},
        ],
    }


@pytest.fixture()
def make_project(project_draft, users):
    """Factory: create a project via the engine, optionally already pending approval."""
    from propman.services import workflow_engine

    def _make(pending=False, **overrides):
        draft = {**project_draft, **overrides}
        if pending:
            draft.setdefault("status", PENDING_APPROVAL)
        return workflow_engine.create_project(draft, created_by=users["creator"].id)

    return _make
