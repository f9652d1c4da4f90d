"""
SQLAlchemy declarative base and engine/session factories.

Two kinds of engines exist because:
- FastAPI is async → needs asyncpg driver + async sessions
- Worker invocations run in threads → need psycopg2 driver + sync sessions

Nothing here creates an engine at import time. The API builds its engine in
the lifespan hook and the worker builds its own in main(); both hand the
resulting session factory to whatever needs the store.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


def make_async_engine(url: str, timeout: float | None = None) -> AsyncEngine:
    connect_args = {}
    if timeout is not None and url.startswith("postgresql+asyncpg"):
        connect_args = {"timeout": timeout, "command_timeout": timeout}
    return create_async_engine(url, echo=False, connect_args=connect_args)


def make_sync_engine(url: str, timeout: float | None = None) -> Engine:
    connect_args = {}
    if timeout is not None and url.startswith("postgresql+psycopg2"):
        # Every statement is a suspension point; bound it below the invocation budget.
        millis = int(timeout * 1000)
        connect_args = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={millis}",
        }
    return create_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args)


def make_async_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


def make_sync_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(engine, expire_on_commit=False)
