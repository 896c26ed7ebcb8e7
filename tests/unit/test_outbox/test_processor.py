"""Unit tests for the outbox publish cycle."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import update

from outbox_service.infra.events.outbox.backoff import BackoffPolicy
from outbox_service.infra.events.outbox.claimer import OutboxClaimer
from outbox_service.infra.events.outbox.delivery import DeliveryResult, KafkaDeliveryClient
from outbox_service.infra.events.outbox.models import OutboxEvent, OutboxStatus
from outbox_service.infra.events.outbox.processor import (
    LEASE_EXPIRED_ERROR,
    CycleReport,
    OutboxPublishCycle,
)
from outbox_service.infra.events.outbox.repository import OutboxRepository
from outbox_service.infra.metrics.prometheus import REGISTRY
from tests.fakes import FakeBroker, as_utc, load_event, stage_event

pytestmark = pytest.mark.unit


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker(errors={"broken": RuntimeError("boom")})


@pytest.fixture
def make_cycle(session_factory, clock, broker):
    def _make(
        *,
        batch_size: int = 2,
        max_attempts: int = 3,
        delivery=None,
        repository: OutboxRepository | None = None,
    ) -> OutboxPublishCycle:
        claimer = OutboxClaimer(
            session_factory,
            batch_size=batch_size,
            lease_timeout=timedelta(minutes=5),
            clock=clock,
            instance_id="test",
        )
        return OutboxPublishCycle(
            claimer=claimer,
            delivery=delivery or KafkaDeliveryClient(broker, send_timeout=1.0),
            session_factory=session_factory,
            backoff=BackoffPolicy(base_delay=1.0, cap_delay=900.0),
            max_attempts=max_attempts,
            repository=repository,
            clock=clock,
        )

    return _make


async def _stage_ordered(session_factory, clock, *topics: str):
    base = clock() - timedelta(minutes=1)
    return [
        await stage_event(
            session_factory,
            topic=topic,
            next_attempt_at=clock(),
            created_at=base + timedelta(seconds=i),
        )
        for i, topic in enumerate(topics)
    ]


# ──────────────────────────────────────────────────────────────
# Outcome transitions
# ──────────────────────────────────────────────────────────────


class TestTransitions:
    """Tests for the state transitions applied by a cycle."""

    async def test_acknowledged_event_becomes_sent(self, make_cycle, session_factory, clock, broker):
        (event_id,) = await _stage_ordered(session_factory, clock, "orders")
        before = REGISTRY.get_sample_value("outbox_events_published_total", {"topic": "orders"}) or 0

        report = await make_cycle().run_once()

        assert (report.claimed, report.sent, report.retried, report.failed) == (1, 1, 0, 0)
        stored = await load_event(session_factory, event_id)
        assert stored.status == OutboxStatus.SENT
        assert as_utc(stored.published_at) == clock()
        assert stored.attempts == 0
        assert broker.published_topics == ["orders"]
        after = REGISTRY.get_sample_value("outbox_events_published_total", {"topic": "orders"})
        assert after == before + 1

    async def test_first_failure_retries_after_two_seconds(self, make_cycle, session_factory, clock):
        (event_id,) = await _stage_ordered(session_factory, clock, "broken")

        report = await make_cycle().run_once()

        assert report.retried == 1
        stored = await load_event(session_factory, event_id)
        assert stored.status == OutboxStatus.PENDING
        assert stored.attempts == 1
        assert as_utc(stored.next_attempt_at) == clock() + timedelta(seconds=2)
        assert stored.last_error == "RuntimeError: boom"
        assert stored.claim_token is None

    async def test_scheduled_retry_is_not_claimed_early(self, make_cycle, session_factory, clock):
        await _stage_ordered(session_factory, clock, "broken")
        cycle = make_cycle()
        await cycle.run_once()

        clock.advance(1.9)
        report = await cycle.run_once()

        assert report.claimed == 0

    async def test_exhausted_event_becomes_failed(self, make_cycle, session_factory, clock):
        (event_id,) = await _stage_ordered(session_factory, clock, "broken")
        cycle = make_cycle(max_attempts=1)

        report = await cycle.run_once()

        assert report.failed == 1
        stored = await load_event(session_factory, event_id)
        assert stored.status == OutboxStatus.FAILED
        assert stored.attempts == 1

        clock.advance(3600)
        assert (await cycle.run_once()).claimed == 0

    async def test_raising_delivery_client_counts_as_failure(self, make_cycle, session_factory, clock):
        class _Exploding:
            async def send(self, event):
                raise RuntimeError("client bug")

        (event_id,) = await _stage_ordered(session_factory, clock, "orders")

        report = await make_cycle(delivery=_Exploding()).run_once()

        assert report.retried == 1
        stored = await load_event(session_factory, event_id)
        assert stored.last_error == "RuntimeError: client bug"


class TestPublishScenario:
    """Batch size 2, max attempts 3, 1s base delay, three due events."""

    async def test_full_lifecycle(self, make_cycle, session_factory, clock, broker):
        a, b, c = await _stage_ordered(session_factory, clock, "orders", "broken", "orders")
        cycle = make_cycle(batch_size=2, max_attempts=3)

        first = await cycle.run_once()
        assert (first.claimed, first.sent, first.retried) == (2, 1, 1)
        assert (await load_event(session_factory, a)).status == OutboxStatus.SENT
        stored_b = await load_event(session_factory, b)
        assert (stored_b.status, stored_b.attempts) == (OutboxStatus.PENDING, 1)
        assert as_utc(stored_b.next_attempt_at) == clock() + timedelta(seconds=2)
        assert (await load_event(session_factory, c)).status == OutboxStatus.PENDING

        clock.advance(2)
        second = await cycle.run_once()
        assert (second.claimed, second.sent, second.retried) == (2, 1, 1)
        assert (await load_event(session_factory, c)).status == OutboxStatus.SENT
        stored_b = await load_event(session_factory, b)
        assert stored_b.attempts == 2
        assert as_utc(stored_b.next_attempt_at) == clock() + timedelta(seconds=4)

        clock.advance(4)
        third = await cycle.run_once()
        assert (third.claimed, third.failed) == (1, 1)
        stored_b = await load_event(session_factory, b)
        assert (stored_b.status, stored_b.attempts) == (OutboxStatus.FAILED, 3)

        clock.advance(3600)
        assert (await cycle.run_once()).claimed == 0
        assert broker.published_topics == ["orders", "orders"]

    async def test_failure_does_not_block_rest_of_batch(self, make_cycle, session_factory, clock):
        bad, good = await _stage_ordered(session_factory, clock, "broken", "orders")

        report = await make_cycle().run_once()

        assert (report.sent, report.retried) == (1, 1)
        assert (await load_event(session_factory, bad)).status == OutboxStatus.PENDING
        assert (await load_event(session_factory, good)).status == OutboxStatus.SENT


# ──────────────────────────────────────────────────────────────
# Concurrency and recovery
# ──────────────────────────────────────────────────────────────


class TestSingleFlight:
    """Tests for overlapping triggers."""

    async def test_overlapping_trigger_is_skipped(self, make_cycle, session_factory, clock, broker):
        await _stage_ordered(session_factory, clock, "orders")
        broker.gate = asyncio.Event()
        cycle = make_cycle()

        running = asyncio.create_task(cycle.run_once())
        while not broker.gate.is_set() and not cycle.in_progress:
            await asyncio.sleep(0)

        skipped = await cycle.run_once()
        assert skipped.skipped is True
        assert skipped.processed == 0

        broker.gate.set()
        finished = await running
        assert finished.sent == 1
        assert cycle.in_progress is False


class TestLeaseRecovery:
    """Tests for events whose claim lease expired."""

    async def test_expired_lease_counts_as_failed_attempt(self, make_cycle, session_factory, clock, broker):
        event_id = await stage_event(
            session_factory,
            next_attempt_at=clock() - timedelta(minutes=10),
            status=OutboxStatus.PROCESSING,
            claimed_at=clock() - timedelta(minutes=6),
            claim_token="crashed:1",
        )

        report = await make_cycle().run_once()

        assert (report.recovered, report.retried, report.claimed) == (1, 1, 0)
        stored = await load_event(session_factory, event_id)
        assert stored.status == OutboxStatus.PENDING
        assert stored.attempts == 1
        assert stored.last_error == LEASE_EXPIRED_ERROR
        assert as_utc(stored.next_attempt_at) == clock() + timedelta(seconds=2)
        assert broker.published == []

    async def test_expired_lease_on_last_attempt_fails(self, make_cycle, session_factory, clock):
        event_id = await stage_event(
            session_factory,
            next_attempt_at=clock(),
            status=OutboxStatus.PROCESSING,
            attempts=2,
            claimed_at=clock() - timedelta(minutes=6),
            claim_token="crashed:1",
        )

        report = await make_cycle(max_attempts=3).run_once()

        assert report.failed == 1
        assert (await load_event(session_factory, event_id)).status == OutboxStatus.FAILED

    async def test_outcome_discarded_when_claim_taken_over(self, make_cycle, session_factory, clock):
        class _SlowDelivery:
            """Loses the claim to another publisher while sending."""

            async def send(self, event):
                async with session_factory() as session, session.begin():
                    await session.execute(
                        update(OutboxEvent)
                        .where(OutboxEvent.id == event.id)
                        .values(claim_token="other:2")
                    )
                return DeliveryResult.success()

        (event_id,) = await _stage_ordered(session_factory, clock, "orders")

        report = await make_cycle(delivery=_SlowDelivery()).run_once()

        assert (report.lost, report.sent) == (1, 0)
        stored = await load_event(session_factory, event_id)
        assert stored.status == OutboxStatus.PROCESSING
        assert stored.claim_token == "other:2"

    async def test_slow_batch_keeps_waiting_events_leased(self, make_cycle, session_factory, clock, broker):
        rival = OutboxClaimer(
            session_factory,
            lease_timeout=timedelta(minutes=5),
            clock=clock,
            instance_id="rival",
        )
        taken_over = []

        class _SlowDelivery:
            """Each send takes well under the lease, the whole batch well over it."""

            def __init__(self):
                self._inner = KafkaDeliveryClient(broker, send_timeout=1.0)

            async def send(self, event):
                clock.advance(200)
                taken_over.extend(await rival.reclaim_expired())
                return await self._inner.send(event)

        ids = await _stage_ordered(session_factory, clock, "orders", "orders", "orders")

        report = await make_cycle(batch_size=3, delivery=_SlowDelivery()).run_once()

        assert taken_over == []
        assert (report.sent, report.lost) == (3, 0)
        assert broker.published_topics == ["orders", "orders", "orders"]
        for event_id in ids:
            stored = await load_event(session_factory, event_id)
            assert (stored.status, stored.attempts) == (OutboxStatus.SENT, 0)

    async def test_event_taken_over_while_waiting_is_not_sent(self, make_cycle, session_factory, clock, broker):
        first, second = await _stage_ordered(session_factory, clock, "orders", "orders")

        class _TakeOverSecond:
            """Another publisher takes the second event while the first is sending."""

            def __init__(self):
                self._inner = KafkaDeliveryClient(broker, send_timeout=1.0)

            async def send(self, event):
                async with session_factory() as session, session.begin():
                    await session.execute(
                        update(OutboxEvent)
                        .where(OutboxEvent.id == second)
                        .values(claim_token="other:2")
                    )
                return await self._inner.send(event)

        report = await make_cycle(delivery=_TakeOverSecond()).run_once()

        assert (report.sent, report.lost) == (1, 1)
        assert len(broker.published) == 1
        assert (await load_event(session_factory, first)).status == OutboxStatus.SENT
        stored = await load_event(session_factory, second)
        assert stored.status == OutboxStatus.PROCESSING
        assert stored.claim_token == "other:2"


class TestErrorContainment:
    """Tests for errors that must not escape a cycle."""

    async def test_store_failure_when_recording_is_contained(self, make_cycle, session_factory, clock):
        class _FlakyRepository(OutboxRepository):
            calls = 0

            async def mark_sent(self, session, event_id, *, claim_token, now):
                type(self).calls += 1
                if type(self).calls == 1:
                    raise RuntimeError("connection reset")
                return await super().mark_sent(session, event_id, claim_token=claim_token, now=now)

        first, second = await _stage_ordered(session_factory, clock, "orders", "orders")

        report = await make_cycle(repository=_FlakyRepository()).run_once()

        assert (report.unrecorded, report.sent) == (1, 1)
        assert (await load_event(session_factory, first)).status == OutboxStatus.PROCESSING
        assert (await load_event(session_factory, second)).status == OutboxStatus.SENT

    async def test_cycle_error_is_reported_not_raised(self, session_factory, clock, broker):
        class _BrokenClaimer:
            async def reclaim_expired(self):
                raise RuntimeError("database is down")

        cycle = OutboxPublishCycle(
            claimer=_BrokenClaimer(),
            delivery=KafkaDeliveryClient(broker),
            session_factory=session_factory,
            backoff=BackoffPolicy(),
            max_attempts=3,
            clock=clock,
        )

        report = await cycle.run_once()

        assert report.errored is True
        assert cycle.in_progress is False

    def test_rejects_zero_max_attempts(self, session_factory, broker):
        with pytest.raises(ValueError, match="max_attempts"):
            OutboxPublishCycle(
                claimer=OutboxClaimer(session_factory),
                delivery=KafkaDeliveryClient(broker),
                session_factory=session_factory,
                backoff=BackoffPolicy(),
                max_attempts=0,
            )


def test_cycle_report_processed_totals_outcomes():
    report = CycleReport(sent=2, retried=1, failed=1, lost=1, unrecorded=1)

    assert report.processed == 6
    assert report.as_dict()["sent"] == 2
