"""CLI utilities for running async operations and formatting output."""

from outbox_service.cli.utils.async_runner import coro, run_async
from outbox_service.cli.utils.formatters import abort, section, status

__all__ = [
    "abort",
    "coro",
    "run_async",
    "section",
    "status",
]
