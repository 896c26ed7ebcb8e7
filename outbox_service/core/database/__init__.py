"""Database model foundations."""

from __future__ import annotations

from .base import NAMING_CONVENTION, Base, TimestampMixin, UUIDv7PKMixin, generate_uuid7, utc_now

__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "TimestampMixin",
    "UUIDv7PKMixin",
    "generate_uuid7",
    "utc_now",
]
