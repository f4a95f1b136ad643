import os

# Keep the app's module-level engine off the local SQLite file during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from app import app, get_clock
from db import get_session

FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable returning a settable "now"."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture(scope="function")
def test_session(engine):
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture(scope="function")
def client(test_session, clock, monkeypatch):
    """Create a test client with dependency overrides for the session and clock."""
    monkeypatch.delenv("AUTH_USER", raising=False)
    monkeypatch.delenv("AUTH_PASS", raising=False)

    def get_test_session():
        yield test_session

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
