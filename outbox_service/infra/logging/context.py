"""Context management for structured logging.

Provides automatic context injection into log records using contextvars, so
that identifiers such as the current claim token or outbox event id show up
on every log line emitted while they are bound, without explicit passing.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

# Each asyncio task gets its own copy automatically
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        ```python
        set_log_context(claim_token="host-1:ab12")
        logger.info("Claimed batch")  # Includes claim_token
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current task."""
    _log_context.set({})


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields for the duration of a block, restoring the previous context after.

    Example:
        ```python
        with log_context(outbox_event_id=str(event.id)):
            await deliver(event)
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    token = _log_context.set(current)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Logging filter that injects the contextvars log context into LogRecords.

    Attached to the root queue handler so records from every logger pass
    through it before they are queued.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            # Don't overwrite explicit extras
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
