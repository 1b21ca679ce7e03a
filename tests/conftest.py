"""Pytest fixtures for testing."""
import os

os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import random
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from tablequest.db.database import get_db
from tablequest.db.init_db import init_db
from tablequest.main import app
from tablequest.services.profiles import create_profile, set_active_profile


class FakeClock:
    """Manually advanced clock for deterministic timing."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(scope="function")
def test_engine():
    """In-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(test_engine):
    """Create a test database session for each test."""
    TestingSessionLocal = sessionmaker(bind=test_engine, autoflush=False, autocommit=False)
    db = TestingSessionLocal()
    yield db
    db.close()


@pytest.fixture
def profile(test_db):
    """Create an active test profile."""
    created = create_profile(test_db, "Lina", "unicorn")
    set_active_profile(test_db, created.id)
    return created


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture(scope="function")
def client(test_engine):
    """Create a test client bound to the in-memory database."""
    TestingSessionLocal = sessionmaker(bind=test_engine, autoflush=False, autocommit=False)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.practice_sessions.clear()

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.practice_sessions.clear()
