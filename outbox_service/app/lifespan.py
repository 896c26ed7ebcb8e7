"""Application lifespan management.

Startup order: logging, database, outbox publisher. Shutdown runs in reverse.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from outbox_service.core.exceptions import OutboxConfigurationError
from outbox_service.core.settings import (
    get_app_settings,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
)
from outbox_service.infra.database import close_database, init_database
from outbox_service.infra.events.outbox import start_outbox_publisher, stop_outbox_publisher
from outbox_service.infra.logging import setup_logging
from outbox_service.infra.logging import shutdown as shutdown_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)


# =============================================================================
# Startup functions
# =============================================================================


async def _startup_core() -> None:
    """Configure logging."""
    app = get_app_settings()

    setup_logging(log_settings=get_logging_settings(), force=True)
    logger.info(
        "Application starting",
        extra={"service": app.service_name, "environment": app.environment},
    )


async def _startup_database() -> bool:
    """Verify the database connection. Returns False when the database is disabled."""
    if not get_db_settings().enabled:
        logger.warning("Database integration disabled, outbox publisher will not start")
        return False

    await init_database()
    return True


async def _startup_outbox() -> None:
    """Start the outbox publisher.

    A configuration error disables publishing without stopping the
    application. An unreachable broker is fatal only when
    ``KAFKA_STARTUP_REQUIRE_BROKER`` is set.
    """
    settings = get_outbox_settings()

    try:
        scheduler = await start_outbox_publisher(settings)
    except OutboxConfigurationError as e:
        logger.error(
            "Invalid outbox publisher configuration, events will not be published",
            extra={"error": str(e)},
        )
        return
    except ConnectionError as e:
        if settings.startup_require_broker:
            logger.exception(
                "Kafka required but unavailable, failing startup",
                extra={"error": str(e), "startup_require_broker": True},
            )
            raise
        logger.warning(
            "Kafka unavailable, outbox publisher not started",
            extra={"error": str(e), "startup_require_broker": False},
        )
        return

    if scheduler.running:
        logger.info("Outbox publisher started", extra={"brokers": settings.broker_list})


# =============================================================================
# Shutdown functions
# =============================================================================


async def _shutdown_outbox() -> None:
    await stop_outbox_publisher()


async def _shutdown_database() -> None:
    await close_database()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    _ = app

    await _startup_core()
    if await _startup_database():
        await _startup_outbox()

    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Application shutting down")
        await _shutdown_outbox()
        await _shutdown_database()
        logger.info("Application shutdown complete")
        shutdown_logging()


__all__ = ["lifespan"]
