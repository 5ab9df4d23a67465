# tests/conftest.py
"""
Shared fixtures: an in-memory SQLite database (aiosqlite), services wired
without Redis, and a recording notification service.
"""

import os

# Settings are read at import time; point them at test infrastructure first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_URL"] = ""
os.environ["EMAIL_API_KEY"] = ""
os.environ["ENABLE_SCHEDULER"] = "false"

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from devsignal.database import Base
from devsignal.services.account_locks import AccountLockManager
from devsignal.services.deduplication import DeduplicationService
from devsignal.services.event_bus import EventBus
from tests.factories import RecordingNotifications


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: database-backed pipeline tests")


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# SERVICES
# ============================================================================

@pytest.fixture
def now():
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def locks():
    return AccountLockManager(redis_client=None, timeout=5)


@pytest.fixture
def dedup():
    """Database-only idempotency checks (REDIS_URL is empty in tests)."""
    return DeduplicationService()


@pytest.fixture
def bus():
    """Event bus with a recording subscriber."""
    bus = EventBus(stream_name="test")
    bus.received = []

    async def record(event):
        bus.received.append(event)

    bus.subscribe(record)
    return bus


@pytest.fixture
def notifications():
    return RecordingNotifications()
