"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Usage:
    from outbox_service.core.settings import get_outbox_settings

    settings = get_outbox_settings()

Testing:
    In tests, clear the caches to force reload:
    clear_all_caches()
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .postgres import PostgresSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get cached application settings.

    Returns:
        Validated and frozen AppSettings instance.
    """
    return AppSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> PostgresSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen PostgresSettings instance.
    """
    return PostgresSettings()


@lru_cache(maxsize=1)
def get_outbox_settings() -> OutboxSettings:
    """Get cached Kafka outbox publisher settings.

    Returns:
        Validated and frozen OutboxSettings instance.
    """
    return OutboxSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear all settings caches (tests and reload)."""
    get_app_settings.cache_clear()
    get_db_settings.cache_clear()
    get_outbox_settings.cache_clear()
    get_logging_settings.cache_clear()
