"""
Shared test fixtures.

These replace real infrastructure with lightweight alternatives:
- PostgreSQL → SQLite (in memory via aiosqlite for the API, a temp file for
  the worker side so several threads can share it)
- Redis → fakeredis (pure Python Redis mock, sync and asyncio flavours)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)
- Wall clock → FakeClock, so liveness windows and retention can be tested
  without sleeping
"""

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker

from api.dependencies import get_db, get_redis
from api.main import create_app
from models.base import Base
from store.job_store import JobStore
from worker.continuation import ContinuationQueue

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


# ── Worker side (sync) ──────────────────────────────────────────


@pytest.fixture
def sync_engine(tmp_path):
    """
    File-backed SQLite with BEGIN IMMEDIATE, so concurrent writers queue up
    on the database lock instead of failing with "database is locked".
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'jobs.db'}",
        connect_args={"timeout": 30, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sync_engine):
    return sessionmaker(sync_engine, expire_on_commit=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(session_factory, clock):
    return JobStore(session_factory, clock=clock)


@pytest.fixture
def sync_redis():
    r = fakeredis.FakeRedis()
    yield r
    r.flushall()


@pytest.fixture
def continuations(sync_redis):
    return ContinuationQueue(sync_redis, dedupe_seconds=30)


# ── API side (async) ────────────────────────────────────────────


@pytest_asyncio.fixture
async def async_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis():
    """Create a fake Redis instance (in-memory, no real Redis needed)."""
    r = FakeRedis()
    yield r
    await r.flushall()


@pytest_asyncio.fixture
async def client(async_session, fake_redis):
    """
    Test HTTP client that talks directly to the FastAPI app.

    dependency_overrides swaps the real get_db/get_redis for the test
    versions, so the lifespan hook (which would connect to Postgres) is
    never needed.
    """
    app = create_app()

    async def override_get_db():
        yield async_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
