"""Repository for OutboxEvent persistence.

Provides methods for:
- Staging new events (producer side)
- Claiming due events with lock-and-skip reads (publisher side)
- Recording delivery outcomes guarded by the claim token
- Counting events per status for monitoring

No method commits. Callers own the transaction, which is what lets a
producer stage an event atomically with its business write and lets the
claimer select and mark rows in one indivisible unit.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update

from outbox_service.infra.events.outbox.models import MAX_ERROR_LENGTH, OutboxEvent, OutboxStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession


def truncate_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    return message if len(message) <= limit else message[:limit]


class OutboxRepository:
    """Data access for the event_outbox table."""

    async def add(
        self,
        session: AsyncSession,
        *,
        topic: str,
        event_type: str,
        payload: Any,
        key: str | None = None,
        event_version: int = 1,
        available_at: datetime | None = None,
        event_id: UUID | None = None,
    ) -> OutboxEvent:
        """Stage a PENDING event on the caller's session.

        Args:
            session: Session carrying the producer's business transaction
            topic: Destination topic
            event_type: Opaque type tag
            payload: JSON-serializable event body
            key: Optional partition key
            event_version: Opaque schema version
            available_at: Earliest delivery time (defaults to now)
            event_id: Explicit id, otherwise a UUID v7 is generated

        Returns:
            The staged (flushed) OutboxEvent
        """
        event = OutboxEvent(
            topic=topic,
            key=key,
            event_type=event_type,
            event_version=event_version,
            payload=payload,
            status=OutboxStatus.PENDING,
            attempts=0,
        )
        if event_id is not None:
            event.id = event_id
        if available_at is not None:
            event.next_attempt_at = available_at

        session.add(event)
        await session.flush()
        return event

    async def get(self, session: AsyncSession, event_id: UUID) -> OutboxEvent | None:
        return await session.get(OutboxEvent, event_id)

    async def claim_due_batch(
        self,
        session: AsyncSession,
        *,
        limit: int,
        now: datetime,
        claim_token: str,
    ) -> Sequence[OutboxEvent]:
        """Lock up to ``limit`` due PENDING events and mark them PROCESSING.

        Rows locked by a concurrent claimer are skipped rather than waited
        on (FOR UPDATE SKIP LOCKED), so concurrent publishers claim disjoint
        sets without stalling each other. Must run inside a transaction;
        the locks are held until it commits.

        Returns:
            Claimed events, oldest first. Empty when nothing is due.
        """
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatus.PENDING,
                OutboxEvent.next_attempt_at <= now,
            )
            .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        events = (await session.execute(stmt)).scalars().all()
        if not events:
            return []

        await self._take_claim(session, [e.id for e in events], now=now, claim_token=claim_token)
        return events

    async def claim_expired_leases(
        self,
        session: AsyncSession,
        *,
        limit: int,
        now: datetime,
        lease_timeout: timedelta,
        claim_token: str,
    ) -> Sequence[OutboxEvent]:
        """Take over PROCESSING events whose lease is older than ``lease_timeout``.

        These belong to a publisher that died (or hung) between claiming and
        recording the outcome. The takeover swaps in a fresh claim token so a
        late update from the previous holder no longer matches.
        """
        cutoff = now - lease_timeout
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatus.PROCESSING,
                OutboxEvent.claimed_at <= cutoff,
            )
            .order_by(OutboxEvent.claimed_at.asc(), OutboxEvent.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        events = (await session.execute(stmt)).scalars().all()
        if not events:
            return []

        await self._take_claim(session, [e.id for e in events], now=now, claim_token=claim_token)
        return events

    async def _take_claim(
        self,
        session: AsyncSession,
        ids: list[UUID],
        *,
        now: datetime,
        claim_token: str,
    ) -> None:
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(ids))
            .values(
                status=OutboxStatus.PROCESSING,
                claimed_at=now,
                claim_token=claim_token,
            )
        )
        await session.execute(stmt)

    async def renew_lease(
        self,
        session: AsyncSession,
        *,
        claim_token: str,
        now: datetime,
    ) -> set[UUID]:
        """Restart the lease of every row still held under ``claim_token``.

        Returns:
            Ids of the rows the token still holds
        """
        stmt = (
            update(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatus.PROCESSING,
                OutboxEvent.claim_token == claim_token,
            )
            .values(claimed_at=now)
            .returning(OutboxEvent.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return set(result.scalars().all())

    async def mark_sent(
        self,
        session: AsyncSession,
        event_id: UUID,
        *,
        claim_token: str,
        now: datetime,
    ) -> bool:
        """PROCESSING -> SENT.

        Returns:
            False if the claim is no longer held by ``claim_token``
        """
        stmt = (
            update(OutboxEvent)
            .where(
                OutboxEvent.id == event_id,
                OutboxEvent.status == OutboxStatus.PROCESSING,
                OutboxEvent.claim_token == claim_token,
            )
            .values(
                status=OutboxStatus.SENT,
                published_at=now,
                last_error=None,
                claimed_at=None,
                claim_token=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def mark_failed(
        self,
        session: AsyncSession,
        event_id: UUID,
        *,
        claim_token: str,
        status: OutboxStatus,
        next_attempt_at: datetime | None,
        error: str,
    ) -> bool:
        """PROCESSING -> PENDING (retry) or FAILED, counting one more attempt.

        Args:
            session: Database session
            event_id: Event to update
            claim_token: Token the event was claimed with
            status: OutboxStatus.PENDING to retry, OutboxStatus.FAILED when exhausted
            next_attempt_at: New earliest delivery time; ignored for FAILED
            error: Failure description, truncated before storing

        Returns:
            False if the claim is no longer held by ``claim_token``
        """
        if status not in (OutboxStatus.PENDING, OutboxStatus.FAILED):
            raise ValueError(f"A failed delivery cannot move an event to {status}")

        values: dict[str, Any] = {
            "status": status,
            "attempts": OutboxEvent.attempts + 1,
            "last_error": truncate_error(error),
            "claimed_at": None,
            "claim_token": None,
        }
        if status == OutboxStatus.PENDING:
            if next_attempt_at is None:
                raise ValueError("next_attempt_at is required when rescheduling an event")
            values["next_attempt_at"] = next_attempt_at

        stmt = (
            update(OutboxEvent)
            .where(
                OutboxEvent.id == event_id,
                OutboxEvent.status == OutboxStatus.PROCESSING,
                OutboxEvent.claim_token == claim_token,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def count_by_status(self, session: AsyncSession) -> dict[OutboxStatus, int]:
        """Count events per status, including zero counts."""
        stmt = select(OutboxEvent.status, func.count()).group_by(OutboxEvent.status)
        counts = {status: 0 for status in OutboxStatus}
        for status, count in (await session.execute(stmt)).all():
            counts[OutboxStatus(status)] = count
        return counts

    async def oldest_pending_created_at(self, session: AsyncSession) -> datetime | None:
        """Creation time of the oldest PENDING event, a simple lag indicator."""
        stmt = select(func.min(OutboxEvent.created_at)).where(
            OutboxEvent.status == OutboxStatus.PENDING
        )
        return (await session.execute(stmt)).scalar_one_or_none()


__all__ = ["OutboxRepository", "truncate_error"]
