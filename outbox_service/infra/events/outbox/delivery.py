"""Delivers one claimed outbox event to Kafka.

Failure is an ordinary outcome here: ``send`` converts every error into a
``DeliveryResult`` so the publish cycle can record it on the row. Only task
cancellation propagates.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from outbox_service.core.exceptions import TopicNotFoundError

if TYPE_CHECKING:
    from outbox_service.infra.events.outbox.claimer import ClaimedEvent

logger = logging.getLogger(__name__)


class MessagePublisher(Protocol):
    """The part of a FastStream broker the delivery client uses."""

    async def publish(self, message: Any, topic: str = "", **kwargs: Any) -> Any: ...


class TopicCatalog(Protocol):
    async def exists(self, topic: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    ok: bool
    error: str | None = None

    @classmethod
    def success(cls) -> DeliveryResult:
        return cls(ok=True)

    @classmethod
    def failure(cls, error: str) -> DeliveryResult:
        return cls(ok=False, error=error)


def encode_payload(payload: Any) -> bytes:
    """Message body for a stored payload: bytes and str as-is, anything else as JSON."""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def describe_error(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class KafkaDeliveryClient:
    """Produces claimed events through a connected FastStream KafkaBroker."""

    def __init__(
        self,
        broker: MessagePublisher,
        *,
        send_timeout: float = 30.0,
        topic_catalog: TopicCatalog | None = None,
    ) -> None:
        self._broker = broker
        self._send_timeout = send_timeout
        self._topic_catalog = topic_catalog

    async def send(self, event: ClaimedEvent) -> DeliveryResult:
        """Send one event, keyed by ``event.key`` when set.

        Returns:
            Success once the broker acknowledged the message, otherwise a
            failure carrying the error description.
        """
        try:
            await asyncio.wait_for(self._send(event), timeout=self._send_timeout)
        except TimeoutError:
            return DeliveryResult.failure(
                f"Timed out after {self._send_timeout}s publishing to {event.topic!r}"
            )
        except Exception as e:
            logger.debug(
                "Outbox delivery attempt failed",
                extra={"event_id": str(event.id), "topic": event.topic, "error": str(e)},
            )
            return DeliveryResult.failure(describe_error(e))
        return DeliveryResult.success()

    async def _send(self, event: ClaimedEvent) -> None:
        if self._topic_catalog is not None and not await self._topic_catalog.exists(event.topic):
            raise TopicNotFoundError(event.topic)

        await self._broker.publish(
            encode_payload(event.payload),
            topic=event.topic,
            key=event.key.encode("utf-8") if event.key is not None else None,
            headers={
                "event-id": str(event.id),
                "event-type": event.event_type,
                "event-version": str(event.event_version),
            },
            correlation_id=str(event.id),
        )
