"""Modular Pydantic Settings v2 configuration.

Settings are split by domain (app/db/kafka/logging), loaded from environment
variables or a ``.env`` file, frozen after validation and cached through the
loaders below.
"""

from __future__ import annotations

from .app import AppSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
)
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .postgres import PostgresSettings

__all__ = [
    "AppSettings",
    "LoggingSettings",
    "OutboxSettings",
    "PostgresSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_db_settings",
    "get_logging_settings",
    "get_outbox_settings",
]
