"""Claims due outbox events for delivery.

A claim is a short transaction that locks a batch of rows with
FOR UPDATE SKIP LOCKED, marks them PROCESSING under a claim token and
commits. Delivery happens afterwards, outside any transaction, so no
database transaction is ever held open across a broker call.
"""

from __future__ import annotations

import logging
import os
import socket
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from outbox_service.core.database.base import utc_now
from outbox_service.infra.events.outbox.repository import OutboxRepository

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_service.infra.events.outbox.models import OutboxEvent

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def default_instance_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


@dataclass(frozen=True, slots=True)
class ClaimedEvent:
    """Immutable snapshot of an event claimed for delivery.

    Safe to use after the claiming session has closed.
    """

    id: uuid.UUID
    topic: str
    key: str | None
    event_type: str
    event_version: int
    payload: Any
    attempts: int
    created_at: datetime
    claim_token: str

    @classmethod
    def from_model(cls, event: OutboxEvent, claim_token: str) -> ClaimedEvent:
        return cls(
            id=event.id,
            topic=event.topic,
            key=event.key,
            event_type=event.event_type,
            event_version=event.event_version,
            payload=event.payload,
            attempts=event.attempts,
            created_at=event.created_at,
            claim_token=claim_token,
        )


class OutboxClaimer:
    """Selects due events and marks them in-flight, one transaction per claim."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        batch_size: int = 100,
        lease_timeout: timedelta = timedelta(minutes=5),
        repository: OutboxRepository | None = None,
        clock: Clock = utc_now,
        instance_id: str | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._session_factory = session_factory
        self._batch_size = batch_size
        self._lease_timeout = lease_timeout
        self._repository = repository or OutboxRepository()
        self._clock = clock
        self.instance_id = instance_id or default_instance_id()

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def new_claim_token(self) -> str:
        # Column holds 64 chars; keep the instance part bounded
        return f"{self.instance_id[:31]}:{uuid.uuid4().hex}"

    async def claim(self, batch_size: int | None = None) -> list[ClaimedEvent]:
        """Claim up to ``batch_size`` due PENDING events, oldest first.

        Returns:
            Snapshots of the claimed events; empty when nothing is due.
        """
        limit = batch_size or self._batch_size
        token = self.new_claim_token()
        now = self._clock()

        async with self._session_factory() as session, session.begin():
            events = await self._repository.claim_due_batch(
                session, limit=limit, now=now, claim_token=token
            )
            claimed = self._snapshot(events, token)

        if claimed:
            logger.debug(
                "Claimed outbox events",
                extra={"count": len(claimed), "claim_token": token},
            )
        return claimed

    async def reclaim_expired(self, batch_size: int | None = None) -> list[ClaimedEvent]:
        """Take over PROCESSING events whose lease has expired.

        Returns:
            Snapshots carrying the new claim token.
        """
        limit = batch_size or self._batch_size
        token = self.new_claim_token()
        now = self._clock()

        async with self._session_factory() as session, session.begin():
            events = await self._repository.claim_expired_leases(
                session,
                limit=limit,
                now=now,
                lease_timeout=self._lease_timeout,
                claim_token=token,
            )
            reclaimed = self._snapshot(events, token)

        if reclaimed:
            logger.warning(
                "Reclaimed outbox events with expired leases",
                extra={
                    "count": len(reclaimed),
                    "claim_token": token,
                    "lease_timeout_seconds": self._lease_timeout.total_seconds(),
                },
            )
        return reclaimed

    @staticmethod
    def _snapshot(events: Sequence[OutboxEvent], token: str) -> list[ClaimedEvent]:
        return [ClaimedEvent.from_model(event, token) for event in events]
