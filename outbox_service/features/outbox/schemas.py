"""Outbox statistics schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PublisherStatus(BaseModel):
    """State of the in-process publisher."""

    enabled: bool = Field(description="Whether publishing is configured")
    running: bool = Field(description="Whether the scheduler is ticking")
    state: str = Field(description="Broker connection state or 'disabled'")
    last_cycle: dict[str, int | bool | float] | None = Field(
        default=None,
        description="Counters from the most recent publish cycle",
    )

    model_config = ConfigDict(frozen=True)


class OutboxStatsResponse(BaseModel):
    """Outbox backlog snapshot.

    Example:
        ```json
        {
            "counts": {"PENDING": 3, "PROCESSING": 0, "SENT": 120, "FAILED": 1},
            "total": 124,
            "oldest_pending_age_seconds": 4.2,
            "publisher": {"enabled": true, "running": true, "state": "connected"}
        }
        ```
    """

    counts: dict[str, int] = Field(description="Row count per status")
    total: int = Field(ge=0)
    oldest_pending_age_seconds: float | None = Field(
        default=None,
        description="Age of the oldest PENDING event, None when the queue is empty",
    )
    publisher: PublisherStatus

    model_config = ConfigDict(frozen=True)
