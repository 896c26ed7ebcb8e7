"""Outbox backlog statistics, shared by the HTTP route and the CLI."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from outbox_service.core.database.base import utc_now
from outbox_service.features.outbox.schemas import OutboxStatsResponse, PublisherStatus
from outbox_service.infra.events.outbox import OutboxRepository, get_outbox_publisher

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from outbox_service.infra.events.outbox import OutboxScheduler


def publisher_status(scheduler: OutboxScheduler | None) -> PublisherStatus:
    if scheduler is None or not scheduler.enabled:
        return PublisherStatus(enabled=False, running=False, state="disabled")

    report = scheduler.last_report
    return PublisherStatus(
        enabled=True,
        running=scheduler.running,
        state=scheduler.state.value,
        last_cycle=report.as_dict() if report is not None else None,
    )


async def collect_outbox_stats(
    session: AsyncSession,
    *,
    repository: OutboxRepository | None = None,
    now: datetime | None = None,
) -> OutboxStatsResponse:
    """Count events by status and measure the age of the oldest PENDING one."""
    repository = repository or OutboxRepository()
    now = now or utc_now()

    counts = await repository.count_by_status(session)
    oldest = await repository.oldest_pending_created_at(session)

    age: float | None = None
    if oldest is not None:
        # SQLite drops tzinfo; stored values are always UTC
        if oldest.tzinfo is None:
            oldest = oldest.replace(tzinfo=UTC)
        age = max((now - oldest).total_seconds(), 0.0)

    return OutboxStatsResponse(
        counts={status.value: count for status, count in counts.items()},
        total=sum(counts.values()),
        oldest_pending_age_seconds=age,
        publisher=publisher_status(get_outbox_publisher()),
    )
