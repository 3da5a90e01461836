# backend/tests/conftest.py
"""
Shared fixtures for the Bookflow test suite.

Every test gets its own in-memory SQLite database. Services commit after
each step and repositories roll back on integrity errors, so a fresh
database per test is simpler than savepoint juggling.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["AVAILABILITY_CACHE_TTL_SECONDS"] = "0"
os.environ["REALTIME_BACKEND"] = "memory"

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from bookflow.database import Base  # noqa: E402
import bookflow.models  # noqa: E402,F401
from bookflow.realtime.invalidation_bus import RealtimeInvalidationBus  # noqa: E402
from bookflow.realtime.transports import InMemoryTransport  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def bus() -> RealtimeInvalidationBus:
    """In-memory bus that delivers immediately (no debounce)."""
    return RealtimeInvalidationBus(InMemoryTransport(), debounce_seconds=0)
