"""Event publisher staging domain events in the outbox.

Events are written to the outbox table in the same transaction as the
domain change, never sent directly. The outbox publisher delivers them after
the transaction commits; if it rolls back the events disappear with it.

Usage:
    from outbox_service.core.events import EventPublisher, ImageUploadedEvent

    async with session.begin():
        session.add(image)
        await EventPublisher(session).publish(ImageUploadedEvent(...))
    # Image row and outbox row are committed together
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID

from outbox_service.infra.events.outbox.models import OutboxEvent, OutboxStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from outbox_service.core.events.base import DomainEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    """Stages domain events as PENDING outbox rows on the caller's session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._pending_count = 0

    def _to_outbox(self, event: DomainEvent, topic: str | None) -> OutboxEvent:
        destination = topic or event.topic
        if not destination:
            raise ValueError(f"No topic given for {type(event).__name__} and it defines no default")

        return OutboxEvent(
            id=UUID(event.event_id),
            topic=destination,
            key=event.partition_key(),
            event_type=event.event_type,
            event_version=event.event_version,
            payload=event.to_outbox_payload(),
            status=OutboxStatus.PENDING,
            attempts=0,
        )

    async def publish(self, event: DomainEvent, *, topic: str | None = None) -> OutboxEvent:
        """Stage one event.

        Args:
            event: The domain event to stage
            topic: Override the event's default topic

        Returns:
            The staged outbox row (persisted when the session commits)
        """
        entry = self._to_outbox(event, topic)
        self._session.add(entry)
        self._pending_count += 1

        logger.debug(
            "Event staged in outbox",
            extra={"event_type": event.event_type, "event_id": event.event_id, "topic": entry.topic},
        )
        return entry

    async def publish_many(
        self,
        events: list[DomainEvent],
        *,
        topic: str | None = None,
    ) -> list[OutboxEvent]:
        """Stage several events in the current transaction."""
        if not events:
            return []

        entries = [self._to_outbox(event, topic) for event in events]
        self._session.add_all(entries)
        self._pending_count += len(entries)

        logger.debug(
            "Batch of events staged in outbox",
            extra={"count": len(entries), "event_types": [e.event_type for e in events]},
        )
        return entries

    @property
    def pending_count(self) -> int:
        """Number of events staged through this publisher."""
        return self._pending_count
