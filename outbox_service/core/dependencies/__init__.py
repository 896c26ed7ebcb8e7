"""FastAPI dependencies."""

from __future__ import annotations

from .database import SessionDep, get_db_session

__all__ = ["SessionDep", "get_db_session"]
