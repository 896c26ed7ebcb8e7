"""Health check response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LivenessResponse(BaseModel):
    """Liveness probe response.

    Example:
        ```json
        {
            "alive": true,
            "timestamp": "2025-01-01T00:00:00Z",
            "service": "outbox-service"
        }
        ```
    """

    alive: bool = Field(description="Liveness status")
    timestamp: datetime = Field(description="Check timestamp")
    service: str = Field(min_length=1, max_length=100, description="Service name")

    model_config = ConfigDict(frozen=True)


class ReadinessResponse(BaseModel):
    """Readiness probe response.

    ``kafka`` only appears in ``checks`` when the publisher is enabled.

    Example:
        ```json
        {
            "ready": true,
            "checks": {"database": true, "kafka": true},
            "publisher": "connected",
            "timestamp": "2025-01-01T00:00:00Z"
        }
        ```
    """

    ready: bool = Field(description="Overall readiness status")
    checks: dict[str, bool] = Field(default_factory=dict, description="Individual dependency checks")
    publisher: str = Field(description="Outbox publisher connection state or 'disabled'")
    timestamp: datetime = Field(description="Check timestamp")

    model_config = ConfigDict(frozen=True)
