import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from typing import List, Sequence  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from app.database import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.models.match import Match  # noqa: E402
from app.models.tournament import Tournament  # noqa: E402
from tests.bracket_factory import Entrant, create_bracket  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables are dropped after each test so brackets never leak between tests
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
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place
    for the entire duration. This ensures the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def tournament(session: Session) -> Tournament:
    t = Tournament(name="Bracket Test Open", location="Test Hall")
    session.add(t)
    session.commit()
    session.refresh(t)
    return t


@pytest.fixture
def make_bracket(session: Session, tournament: Tournament):
    """Factory: make_bracket(entrants, category=..., age_group=..., flag_byes=...) -> rounds"""

    def _make(entrants: Sequence[Entrant], **kwargs) -> List[List[Match]]:
        return create_bracket(session, tournament, entrants, **kwargs)

    return _make
