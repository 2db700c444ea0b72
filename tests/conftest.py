"""Pytest fixtures for the CMS admin service tests."""

import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SQLALCHEMY_ECHO", "false")
os.environ.setdefault("SESSION_SECRET", "testsecret-with-enough-bytes-for-hs256")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("AUTH_RATE_LIMIT_MAX_ATTEMPTS", "5")
os.environ.setdefault("AUTH_RATE_LIMIT_WINDOW_SECONDS", "60")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from cms_admin import models  # noqa: E402,F401
from cms_admin.db.session import Base, get_engine, reset_engine  # noqa: E402
from cms_admin.main import create_app  # noqa: E402
from cms_admin.models.identity import Role  # noqa: E402
from cms_admin.models.repositories import IdentityRepository  # noqa: E402
from cms_admin.services.transactions import transactional_session  # noqa: E402
from tests.helpers import DEFAULT_PASSWORD, FakeClock  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _engine():
    reset_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    reset_engine()


@pytest.fixture(autouse=True)
def _db_cleanup(_engine):
    Base.metadata.drop_all(bind=_engine)
    Base.metadata.create_all(bind=_engine)
    yield


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def app(clock):
    application = create_app(clock=clock)
    application.config.update({"TESTING": True})
    yield application


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture()
def make_identity(app):
    hasher = app.extensions["password_hasher"]

    def _make(
        email: str,
        role: Role = Role.VIEWER,
        *,
        password: str = DEFAULT_PASSWORD,
        name: str = "Staff Member",
        is_active: bool = True,
    ):
        with transactional_session(name="tests.identity") as session:
            return IdentityRepository(session).create_identity(
                email=email,
                password_hash=hasher.hash(password),
                name=name,
                role=role,
                is_active=is_active,
            )

    return _make


@pytest.fixture()
def auth_headers(app):
    sessions = app.extensions["session_manager"]

    def _headers(identity):
        token = sessions.issue(identity).token
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def admin(make_identity):
    return make_identity("admin@example.com", Role.ADMIN, name="Admin")
