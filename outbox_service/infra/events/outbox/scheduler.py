"""Scheduler owning the outbox publisher's runtime resources.

The scheduler holds everything that lives for the duration of the
publisher: the broker connection, the topic catalog, the ticker task and the
in-flight cycle. ``start()`` acquires them, ``stop()`` releases them, and
``async with OutboxScheduler(...)`` guarantees the release.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from outbox_service.core.database.base import utc_now
from outbox_service.core.settings import get_outbox_settings
from outbox_service.infra.events.outbox.claimer import OutboxClaimer
from outbox_service.infra.events.outbox.delivery import KafkaDeliveryClient
from outbox_service.infra.events.outbox.mode import (
    PublisherDisabled,
    PublisherEnabled,
    PublisherMode,
    resolve_publisher_mode,
)
from outbox_service.infra.events.outbox.processor import CycleReport, OutboxPublishCycle
from outbox_service.infra.messaging.broker import (
    ConnectionState,
    KafkaTopicCatalog,
    create_kafka_broker,
    start_broker,
    stop_broker,
)
from outbox_service.infra.metrics.prometheus import outbox_publisher_running

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from outbox_service.core.settings.outbox import OutboxSettings
    from outbox_service.infra.events.outbox.claimer import Clock

logger = logging.getLogger(__name__)

# Global scheduler instance used by the app lifespan and the CLI
_scheduler: OutboxScheduler | None = None


class TopicCatalogResource(Protocol):
    async def start(self, *, timeout: float | None = None) -> None: ...

    async def close(self) -> None: ...

    async def exists(self, topic: str) -> bool: ...


BrokerFactory = Callable[[PublisherEnabled], Any]
CatalogFactory = Callable[[PublisherEnabled], TopicCatalogResource]


class OutboxScheduler:
    """Drives the publish cycle on a fixed interval.

    A cycle runs immediately on start and then every ``poll_interval``
    seconds. A tick that fires while a cycle is still running is a no-op.
    """

    def __init__(
        self,
        mode: PublisherMode,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        broker_factory: BrokerFactory = create_kafka_broker,
        catalog_factory: CatalogFactory = KafkaTopicCatalog.from_config,
        clock: Clock = utc_now,
        instance_id: str | None = None,
    ) -> None:
        self.mode = mode
        self._session_factory = session_factory
        self._broker_factory = broker_factory
        self._catalog_factory = catalog_factory
        self._clock = clock
        self._instance_id = instance_id

        self._state = ConnectionState.DISCONNECTED
        self._broker: Any | None = None
        self._catalog: TopicCatalogResource | None = None
        self._cycle: OutboxPublishCycle | None = None
        self._ticker: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[CycleReport] | None = None
        self._last_report: CycleReport | None = None

    # ─────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────
    @property
    def enabled(self) -> bool:
        return isinstance(self.mode, PublisherEnabled)

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    # ─────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────
    async def start(self, *, schedule: bool = True) -> bool:
        """Connect and, unless ``schedule`` is False, start the ticker.

        Returns:
            False when the publisher is disabled (nothing was connected).

        Raises:
            ConnectionError: If the broker connection fails or times out.
        """
        if isinstance(self.mode, PublisherDisabled):
            logger.info("Outbox publisher disabled", extra={"reason": self.mode.reason})
            return False

        if self.connected:
            logger.warning("Outbox publisher already started")
            return True

        config = self.mode
        await self._connect(config)

        self._cycle = OutboxPublishCycle(
            claimer=OutboxClaimer(
                self._session_factory,
                batch_size=config.batch_size,
                lease_timeout=config.lease_timeout,
                clock=self._clock,
                instance_id=self._instance_id,
            ),
            delivery=KafkaDeliveryClient(
                self._broker,
                send_timeout=config.send_timeout,
                topic_catalog=self._catalog,
            ),
            session_factory=self._session_factory,
            backoff=config.backoff,
            max_attempts=config.max_attempts,
            clock=self._clock,
        )

        if schedule:
            self._ticker = asyncio.create_task(
                self._tick_loop(config.poll_interval), name="outbox-publisher"
            )
            outbox_publisher_running.set(1)

        logger.info(
            "Outbox publisher started",
            extra={
                "brokers": list(config.brokers),
                "scheduled": schedule,
                "poll_interval": config.poll_interval,
                "batch_size": config.batch_size,
                "max_attempts": config.max_attempts,
            },
        )
        return True

    async def _connect(self, config: PublisherEnabled) -> None:
        self._state = ConnectionState.CONNECTING
        broker = self._broker_factory(config)
        catalog: TopicCatalogResource | None = None
        try:
            await start_broker(broker, timeout=config.connect_timeout)
            if config.verify_topics:
                catalog = self._catalog_factory(config)
                await catalog.start(timeout=config.connect_timeout)
        except BaseException:
            self._state = ConnectionState.FAILED
            if catalog is not None:
                await catalog.close()
            await stop_broker(broker)
            raise

        self._broker = broker
        self._catalog = catalog
        self._state = ConnectionState.CONNECTED

    async def stop(self) -> None:
        """Stop ticking, let the in-flight cycle finish, then disconnect.

        The in-flight cycle gets ``graceful_timeout`` seconds before it is
        cancelled. Safe to call more than once.
        """
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker

        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            timeout = self.mode.graceful_timeout if isinstance(self.mode, PublisherEnabled) else 0
            try:
                await asyncio.wait_for(asyncio.shield(inflight), timeout=timeout)
            except TimeoutError:
                logger.warning("Outbox publish cycle did not finish in time, cancelling")
                inflight.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await inflight

        catalog, self._catalog = self._catalog, None
        if catalog is not None:
            await catalog.close()

        broker, self._broker = self._broker, None
        if broker is not None:
            await stop_broker(broker)
            logger.info("Outbox publisher stopped")

        self._cycle = None
        self._state = ConnectionState.DISCONNECTED
        outbox_publisher_running.set(0)

    async def __aenter__(self) -> OutboxScheduler:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    # ─────────────────────────────────────────────────────
    # Triggers
    # ─────────────────────────────────────────────────────
    def kick(self) -> asyncio.Task[CycleReport] | None:
        """Trigger a cycle now unless one is already in flight.

        Returns:
            The cycle task, or None when nothing was started.
        """
        if self._cycle is None:
            return None
        if self._inflight is not None and not self._inflight.done():
            return None
        self._inflight = asyncio.create_task(self._run_cycle(self._cycle), name="outbox-publish-cycle")
        return self._inflight

    async def run_cycle(self) -> CycleReport:
        """Run one cycle and wait for it (used by the CLI and tests)."""
        if self._cycle is None:
            raise RuntimeError("Outbox publisher is not started")
        return await self._run_cycle(self._cycle)

    async def _run_cycle(self, cycle: OutboxPublishCycle) -> CycleReport:
        report = await cycle.run_once()
        if not report.skipped:
            self._last_report = report
        return report

    async def _tick_loop(self, interval: float) -> None:
        while True:
            self.kick()
            await asyncio.sleep(interval)


async def start_outbox_publisher(
    settings: OutboxSettings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    **scheduler_kwargs: Any,
) -> OutboxScheduler:
    """Resolve the publisher mode from settings and start the global scheduler.

    Returns:
        The scheduler; check ``running`` to see whether it is active.

    Raises:
        OutboxConfigurationError: On invalid publisher configuration.
        ConnectionError: If the broker cannot be reached in time.
    """
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    mode = resolve_publisher_mode(settings or get_outbox_settings())
    if session_factory is None:
        from outbox_service.infra.database.session import get_session_factory

        session_factory = get_session_factory()

    scheduler = OutboxScheduler(mode, session_factory=session_factory, **scheduler_kwargs)
    await scheduler.start()
    _scheduler = scheduler
    return scheduler


async def stop_outbox_publisher() -> None:
    """Stop the global outbox scheduler."""
    global _scheduler

    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_outbox_publisher() -> OutboxScheduler | None:
    """Get the global outbox scheduler instance."""
    return _scheduler


__all__ = [
    "OutboxScheduler",
    "get_outbox_publisher",
    "start_outbox_publisher",
    "stop_outbox_publisher",
]
