"""
Shared pytest fixtures for the Project Task Assistant test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - owner / alice / bob: Pre-created users (alice and bob are members)
    - project: Kanban project owned by ``owner``
    - make_user / make_project: factories for extra users and projects
    - make_task: Task factory with deterministic creation order
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import ProjectMember, User
from app.models.project import Project
from app.models.task import Task

_BASE_CREATED_AT = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


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


# ── Convenience helpers ──────────────────────────────────────────────────


def _create_user(name, email=None):
    user = User(name=name, email=email or f"{name.lower().replace(' ', '.')}@example.com")
    _db.session.add(user)
    _db.session.commit()
    return user


def _create_project(owner, members=(), **kw):
    project = Project(name=kw.pop("name", "Website Relaunch"), owner_id=owner.id, **kw)
    _db.session.add(project)
    _db.session.flush()
    for user in members:
        _db.session.add(ProjectMember(project_id=project.id, user_id=user.id))
    _db.session.commit()
    return project


@pytest.fixture()
def make_user():
    return _create_user


@pytest.fixture()
def make_project():
    return _create_project


@pytest.fixture()
def owner():
    return _create_user("Olivia Owner", "olivia@example.com")


@pytest.fixture()
def alice():
    return _create_user("Alice Smith", "alice@example.com")


@pytest.fixture()
def bob():
    return _create_user("Bob Jones", "bob@example.com")


@pytest.fixture()
def project(owner, alice, bob):
    """Kanban project with alice and bob as members."""
    return _create_project(owner, members=(alice, bob))


@pytest.fixture()
def make_task(project, owner):
    """
    Factory: make_task("Title", status=..., priority=..., assignee=user,
    end_date=date, target=other_project). Each call is created one minute
    after the previous, so created_at ordering follows call order.
    """
    counter = {"n": 0}

    def _create_task(title, *, status="todo", priority="medium", assignee=None, end_date=None,
                     description="", target=None):
        counter["n"] += 1
        task = Task(
            project_id=(target or project).id,
            title=title,
            description=description,
            status=status,
            priority=priority,
            assignee_id=assignee.id if assignee else None,
            creator_id=owner.id,
            end_date=end_date,
            created_at=_BASE_CREATED_AT + timedelta(minutes=counter["n"]),
        )
        _db.session.add(task)
        _db.session.commit()
        return task

    return _create_task
