"""Health check API endpoints.

- Liveness probes: /health/live - Is the process alive?
- Readiness probes: /health/ready - Is the database reachable and the publisher connected?
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Response, status

from outbox_service.core.settings import get_app_settings, get_db_settings
from outbox_service.features.health.schemas import LivenessResponse, ReadinessResponse
from outbox_service.infra.database import check_database_health
from outbox_service.infra.events.outbox import get_outbox_publisher

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    response_model=LivenessResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
)
async def liveness_check() -> LivenessResponse:
    """Return 200 while the process is responsive."""
    return LivenessResponse(
        alive=True,
        timestamp=datetime.now(UTC),
        service=get_app_settings().service_name,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    responses={503: {"description": "Service not ready"}},
    summary="Readiness probe",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Check the database and, when publishing is enabled, the Kafka connection.

    Returns HTTP 503 if any check fails.
    """
    checks: dict[str, bool] = {}
    if get_db_settings().enabled:
        checks["database"] = await check_database_health()

    scheduler = get_outbox_publisher()
    if scheduler is not None and scheduler.enabled:
        checks["kafka"] = scheduler.connected
        publisher = scheduler.state.value
    else:
        publisher = "disabled"

    ready = all(checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        ready=ready,
        checks=checks,
        publisher=publisher,
        timestamp=datetime.now(UTC),
    )
