"""Database session management with the psycopg3 async driver.

The engine and session factory are created lazily from ``PostgresSettings``
so that importing this module never opens connections and tests can swap the
URL before first use.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from outbox_service.core.settings import get_db_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from outbox_service.core.settings.postgres import PostgresSettings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_from_settings(settings: PostgresSettings) -> AsyncEngine:
    return create_async_engine(settings.url, **settings.engine_kwargs())


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by producers and the outbox publisher alike."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine_from_settings(get_db_settings())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine())
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Get async database session.

    Yields:
        Database session that is automatically closed.

    Example:
        async with get_async_session() as session:
            async with session.begin():
                session.add(OutboxEvent(...))
    """
    async with get_session_factory()() as session:
        yield session


async def _ensure_outbox_table(engine: AsyncEngine) -> None:
    """Create the event_outbox table if migrations haven't run yet.

    Idempotent thanks to SQLAlchemy's ``checkfirst`` guard.
    """
    from outbox_service.infra.events.outbox.models import OutboxEvent

    async with engine.begin() as conn:
        await conn.run_sync(
            lambda sync_conn: OutboxEvent.__table__.create(bind=sync_conn, checkfirst=True)
        )


async def init_database() -> None:
    """Verify the database is reachable and optionally create the outbox table.

    Raises:
        Exception: Whatever the driver raises when the connection fails.
    """
    settings = get_db_settings()
    engine = get_engine()

    logger.info("Initializing database connection", extra={"host": settings.host, "database": settings.name})
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        if settings.create_tables:
            await _ensure_outbox_table(engine)
    except Exception as e:
        logger.error("Failed to connect to database", extra={"host": settings.host, "error": str(e)})
        raise

    logger.info("Database connection established successfully", extra={"host": settings.host})


async def check_database_health(timeout: float | None = None) -> bool:
    """Return True when a trivial query succeeds within the timeout."""
    timeout = timeout if timeout is not None else get_db_settings().health_check_timeout

    async def _ping() -> None:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))

    try:
        await asyncio.wait_for(_ping(), timeout=timeout)
    except Exception as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        return False
    return True


async def close_database() -> None:
    """Dispose of the engine. Called during application shutdown."""
    global _engine, _session_factory

    if _engine is None:
        return

    logger.info("Closing database connection")
    try:
        await _engine.dispose()
        logger.info("Database connection closed successfully")
    except Exception as e:
        logger.exception("Error closing database connection", extra={"error": str(e)})
    finally:
        _engine = None
        _session_factory = None
