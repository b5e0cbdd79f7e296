"""
Shared test fixtures.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from admissions.core.rate_limit import get_memory_store, set_rate_limit_store
from admissions.models import Base

# Tables whose column types SQLite can hold; enough for session-level tests
SQLITE_TABLES = (
    "applications",
    "application_status_history",
    "notifications",
    "system_audit_log",
    "request_rate_limits",
)


@pytest.fixture(autouse=True)
def memory_rate_limit_store(monkeypatch):
    """Every test gets an empty in-process rate limit store and no env overrides."""
    for name in list(os.environ):
        if name.startswith("RATE_LIMIT_"):
            monkeypatch.delenv(name, raising=False)

    store = get_memory_store()
    store.reset()
    set_rate_limit_store(store)
    yield store
    store.reset()
    set_rate_limit_store(None)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.rollback = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.flush = AsyncMock()
    db.add = MagicMock()
    # Used as ``async with db.begin_nested():``
    db.begin_nested = MagicMock()
    return db


@pytest_asyncio.fixture
async def sqlite_session_factory():
    """
    Session factory over an in-memory SQLite database, configured like the
    application's (``expire_on_commit=False``).

    pysqlite's own BEGIN handling breaks SAVEPOINT, so BEGIN is emitted by
    SQLAlchemy instead.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    tables = [Base.metadata.tables[name] for name in SQLITE_TABLES]
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=tables)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_session_factory):
    async with sqlite_session_factory() as session:
        yield session
