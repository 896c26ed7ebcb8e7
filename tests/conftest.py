"""Pytest configuration and shared fixtures.

Organization:
    - Environment: defaults that keep tests off external infrastructure
    - Settings: cache reset between tests
    - Database: file-backed SQLite engine and session factory per test
    - Time: a controllable clock for lease and backoff assertions
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Iterator
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from outbox_service.core.database.base import Base
from outbox_service.core.settings import clear_all_caches
from outbox_service.infra.database.session import build_session_factory
from tests.fakes import FakeClock

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Ensure tests run without external infrastructure
os.environ.setdefault("KAFKA_ENABLED", "false")
os.environ.setdefault("DB_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_FILE_ENABLED", "false")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_settings() -> Iterator[None]:
    """Reload settings from the environment for every test."""
    clear_all_caches()
    yield
    clear_all_caches()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """SQLite database file unique to the test.

    A file rather than ``:memory:`` so every pooled connection sees the same
    tables.
    """
    return f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}"


@pytest.fixture
async def db_engine(db_url: str) -> AsyncGenerator[AsyncEngine]:
    """Async engine with all tables created."""
    engine = create_async_engine(db_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return build_session_factory(db_engine)


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Controllable UTC clock, advanced explicitly by the test."""
    return FakeClock()
