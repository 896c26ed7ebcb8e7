"""One publish cycle: claim due events, deliver each, record each outcome.

The cycle:
1. Takes over events whose PROCESSING lease expired and records them as a
   failed attempt (their previous holder never reported back)
2. Claims a batch of due PENDING events
3. Delivers them one at a time in creation order, restarting the lease of
   the rows still waiting before each send
4. Records every outcome in its own transaction

Per-event errors (delivery or persistence) never abort the rest of the
batch. A cycle-level error is logged and the next trigger simply retries.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Protocol

from outbox_service.core.database.base import utc_now
from outbox_service.infra.events.outbox.delivery import DeliveryResult, describe_error
from outbox_service.infra.events.outbox.models import OutboxStatus
from outbox_service.infra.events.outbox.repository import OutboxRepository
from outbox_service.infra.logging.context import log_context
from outbox_service.infra.metrics.prometheus import (
    outbox_claims_lost_total,
    outbox_cycle_duration_seconds,
    outbox_cycle_errors_total,
    outbox_delivery_failures_total,
    outbox_events_claimed_total,
    outbox_events_published_total,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_service.infra.events.outbox.backoff import BackoffPolicy
    from outbox_service.infra.events.outbox.claimer import ClaimedEvent, Clock, OutboxClaimer

logger = logging.getLogger(__name__)

LEASE_EXPIRED_ERROR = "Claim lease expired before the delivery outcome was recorded"


class DeliveryClient(Protocol):
    async def send(self, event: ClaimedEvent) -> DeliveryResult: ...


@dataclass(slots=True)
class CycleReport:
    """What one run of the publish cycle did."""

    claimed: int = 0
    recovered: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    lost: int = 0
    unrecorded: int = 0
    skipped: bool = False
    errored: bool = False
    duration: float = 0.0

    @property
    def processed(self) -> int:
        return self.sent + self.retried + self.failed + self.lost + self.unrecorded

    def as_dict(self) -> dict[str, int | bool | float]:
        return asdict(self)


class OutboxPublishCycle:
    """Single-flight orchestration of Claimer -> Delivery -> Store update.

    Attributes:
        max_attempts: Attempts after which a failing event becomes FAILED
    """

    def __init__(
        self,
        *,
        claimer: OutboxClaimer,
        delivery: DeliveryClient,
        session_factory: async_sessionmaker[AsyncSession],
        backoff: BackoffPolicy,
        max_attempts: int,
        repository: OutboxRepository | None = None,
        clock: Clock = utc_now,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self._claimer = claimer
        self._delivery = delivery
        self._session_factory = session_factory
        self._backoff = backoff
        self._repository = repository or OutboxRepository()
        self._clock = clock
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    async def run_once(self) -> CycleReport:
        """Run one cycle unless one is already running in this process.

        Never raises for store or broker errors.

        Returns:
            Report of the cycle; ``skipped`` is set when another cycle was
            still running.
        """
        if self._in_progress:
            logger.debug("Outbox publish cycle still running, skipping trigger")
            return CycleReport(skipped=True)

        self._in_progress = True
        report = CycleReport()
        started = time.perf_counter()
        try:
            await self._run(report)
        except Exception:
            report.errored = True
            outbox_cycle_errors_total.inc()
            logger.exception("Outbox publish cycle failed", extra=report.as_dict())
        finally:
            self._in_progress = False
            report.duration = time.perf_counter() - started
            outbox_cycle_duration_seconds.observe(report.duration)

        if report.processed:
            logger.info("Outbox publish cycle completed", extra=report.as_dict())
        return report

    async def _run(self, report: CycleReport) -> None:
        expired = await self._claimer.reclaim_expired()
        if expired:
            report.recovered = len(expired)
            outbox_events_claimed_total.labels(source="expired_lease").inc(len(expired))
            for event in expired:
                with log_context(outbox_event_id=str(event.id), claim_token=event.claim_token):
                    await self._record_failure(event, LEASE_EXPIRED_ERROR, report)

        events = await self._claimer.claim()
        if not events:
            return

        report.claimed = len(events)
        outbox_events_claimed_total.labels(source="due").inc(len(events))
        for event in events:
            with log_context(outbox_event_id=str(event.id), claim_token=event.claim_token):
                await self._deliver(event, report)

    async def _deliver(self, event: ClaimedEvent, report: CycleReport) -> None:
        if not await self._renew_lease(event, report):
            return

        try:
            result = await self._delivery.send(event)
        except Exception as e:
            result = DeliveryResult.failure(describe_error(e))

        if result.ok:
            await self._record_success(event, report)
        else:
            await self._record_failure(event, result.error or "Unknown delivery error", report)

    async def _renew_lease(self, event: ClaimedEvent, report: CycleReport) -> bool:
        """Restart the lease of the rows still waiting in this batch.

        Returns:
            False if the event must not be sent: its claim was taken over
            or the lease could not be renewed.
        """
        try:
            async with self._session_factory() as session, session.begin():
                held = await self._repository.renew_lease(
                    session, claim_token=event.claim_token, now=self._clock()
                )
        except Exception:
            report.unrecorded += 1
            logger.exception(
                "Could not renew the outbox claim lease; "
                "the event will be sent after the claim lease expires",
                extra={"event_id": str(event.id), "topic": event.topic},
            )
            return False

        if event.id not in held:
            self._claim_lost(event, report)
            return False
        return True

    async def _record_success(self, event: ClaimedEvent, report: CycleReport) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                updated = await self._repository.mark_sent(
                    session, event.id, claim_token=event.claim_token, now=self._clock()
                )
        except Exception:
            report.unrecorded += 1
            logger.exception(
                "Outbox event delivered but its state could not be saved; "
                "it will be redelivered after the claim lease expires",
                extra={"event_id": str(event.id), "topic": event.topic},
            )
            return

        if not updated:
            self._claim_lost(event, report)
            return

        report.sent += 1
        outbox_events_published_total.labels(topic=event.topic).inc()
        logger.debug(
            "Outbox event published",
            extra={"event_id": str(event.id), "topic": event.topic, "event_type": event.event_type},
        )

    async def _record_failure(self, event: ClaimedEvent, error: str, report: CycleReport) -> None:
        attempts = event.attempts + 1
        now = self._clock()
        if self._backoff.is_exhausted(attempts, self.max_attempts):
            status, next_attempt_at = OutboxStatus.FAILED, None
        else:
            status, next_attempt_at = OutboxStatus.PENDING, self._backoff.next_attempt_at(attempts, now)

        try:
            async with self._session_factory() as session, session.begin():
                updated = await self._repository.mark_failed(
                    session,
                    event.id,
                    claim_token=event.claim_token,
                    status=status,
                    next_attempt_at=next_attempt_at,
                    error=error,
                )
        except Exception:
            report.unrecorded += 1
            logger.exception(
                "Failed to save outbox delivery failure; "
                "the event will be retried after the claim lease expires",
                extra={"event_id": str(event.id), "topic": event.topic, "error": error},
            )
            return

        if not updated:
            self._claim_lost(event, report)
            return

        extra = {
            "event_id": str(event.id),
            "topic": event.topic,
            "event_type": event.event_type,
            "attempts": attempts,
            "max_attempts": self.max_attempts,
            "error": error,
        }
        if status == OutboxStatus.FAILED:
            report.failed += 1
            outbox_delivery_failures_total.labels(topic=event.topic, outcome="failed").inc()
            logger.error("Outbox event exhausted its delivery attempts, marked FAILED", extra=extra)
        else:
            report.retried += 1
            outbox_delivery_failures_total.labels(topic=event.topic, outcome="retry").inc()
            logger.warning(
                "Outbox delivery failed, retry scheduled",
                extra={**extra, "next_attempt_at": next_attempt_at.isoformat() if next_attempt_at else None},
            )

    @staticmethod
    def _claim_lost(event: ClaimedEvent, report: CycleReport) -> None:
        report.lost += 1
        outbox_claims_lost_total.inc()
        logger.warning(
            "Outbox claim was taken over by another publisher; discarding this attempt",
            extra={"event_id": str(event.id), "topic": event.topic},
        )
