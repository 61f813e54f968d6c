"""Async engine and session handling.

One engine per process, built lazily from ``settings.database``. Request
handlers get a session through :func:`get_db`; the scheduler and the CLI
use :func:`get_db_context`. Both commit on success and roll back on error,
though workflows commit per item themselves.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clinic_followup.config import get_settings
from clinic_followup.core.logging import get_logger
from clinic_followup.db.base import Base

log = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    """Pool and driver options for ``url``."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_recycle": 1800,
            "pool_pre_ping": True,
        }

    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    database = parsed.database
    if not database or database == ":memory:":
        # Every checkout must see the same in-memory database
        options["poolclass"] = StaticPool
    else:
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    return options


def get_engine() -> AsyncEngine:
    """Process-wide engine configured from settings."""
    global _engine

    if _engine is None:
        db = get_settings().database
        _engine = create_async_engine(db.url, echo=db.echo, **_engine_options(db.url))
        log.info("Database engine created", backend=make_url(db.url).get_backend_name())

    return _engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``.

    Objects stay readable after commit and nothing is flushed implicitly;
    the repositories flush before every guarded update.
    """
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())

    return _session_factory


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session scope for jobs and CLI commands.

    Usage:
        async with get_db_context() as session:
            await run_job("reminders-24h", session, channels, settings)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_db_context() as session:
        yield session


async def _create_tables(engine: AsyncEngine) -> None:
    # Registers the mapped tables on Base.metadata
    from clinic_followup.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Create missing tables on the configured database."""
    await _create_tables(get_engine())


async def close_db() -> None:
    """Dispose of the engine so the next call builds a fresh one."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def create_test_engine(url: str = "sqlite+aiosqlite:///:memory:") -> AsyncEngine:
    """Standalone engine with all tables created, for tests."""
    engine = create_async_engine(url, echo=False, **_engine_options(url))
    await _create_tables(engine)
    return engine
