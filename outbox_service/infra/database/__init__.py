"""Async database engine and session management."""

from __future__ import annotations

from .session import (
    build_session_factory,
    check_database_health,
    close_database,
    create_engine_from_settings,
    get_async_session,
    get_engine,
    get_session_factory,
    init_database,
)

__all__ = [
    "build_session_factory",
    "check_database_health",
    "close_database",
    "create_engine_from_settings",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_database",
]
