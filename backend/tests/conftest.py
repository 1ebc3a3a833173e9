import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from tourney.database import get_session  # noqa: E402
from tourney.main import app  # noqa: E402
from tourney.repository import SqlMatchRepository  # noqa: E402
from tourney.services.match_service import MatchService  # noqa: E402
from tourney.services.notifier import RecordingNotifier, get_notifier  # noqa: E402
from tourney.utils.locks import KeyedLocks  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Models imported before create_all() (see session_fixture)
# 4. App dependencies overridden to use test_engine and a recording notifier
# 5. Tables created and dropped per test; conflict checks span tournaments,
#    so rows from one test must not leak into the next
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    from tourney.models.match import Match  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="notifier")
def notifier_fixture():
    return RecordingNotifier()


@pytest.fixture(name="service")
def service_fixture(session: Session, notifier: RecordingNotifier):
    """MatchService over the test session with its own lock registry"""
    return MatchService(SqlMatchRepository(session), notifier=notifier, locks=KeyedLocks())


@pytest.fixture(name="client")
def client_fixture(session: Session, notifier: RecordingNotifier):
    """Provide a test client with overridden database session and notifier

    Overrides MUST be set BEFORE TestClient() and stay in place for the
    entire duration, so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
