"""Shared test fixtures for auth tests."""

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from festive.config import settings

# Field encryption needs a key before any model is built
settings.encryption_key = Fernet.generate_key().decode()

from festive.database import Base, get_db  # noqa: E402
from festive.main import app  # noqa: E402
from festive.security.event_log import SecurityEventLog  # noqa: E402
from tests.helpers import make_rate_limiter  # noqa: E402


def _memory_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def auth_client():
    """Create test client with in-memory database for auth tests.

    Yields a tuple of (TestClient, SessionMaker) for use in tests. Each test
    gets its own rate limiter and security event log.
    """
    engine = _memory_engine()
    testing_session_local = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.rate_limiter = make_rate_limiter()
    app.state.security_events = SecurityEventLog(capacity=100)

    with TestClient(app) as test_client:
        yield test_client, testing_session_local

    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db_session():
    """Standalone in-memory session for repository tests."""
    engine = _memory_engine()
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
