"""Router registry and setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from outbox_service.features.health.router import router as health_router
from outbox_service.features.metrics.router import router as metrics_router
from outbox_service.features.outbox.router import router as outbox_router

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


def setup_routers(app: FastAPI) -> None:
    """Register all feature routers with the application."""
    # Unprefixed so probes and scrapers find them at fixed paths
    app.include_router(metrics_router, tags=["observability"])
    app.include_router(health_router, tags=["health"])
    app.include_router(outbox_router, tags=["outbox"])

    logger.debug("Routers registered", extra={"routes": len(app.routes)})
