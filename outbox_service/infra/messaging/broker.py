"""Kafka broker setup using FastStream, plus topic metadata via aiokafka.

This module provides:
- KafkaBroker construction from the resolved publisher configuration
- Connection start/stop with a bounded connect timeout
- KafkaTopicCatalog, a cached view of the topics that exist on the cluster

The publisher only produces messages; no subscribers are registered, so the
broker is connected with ``connect()`` rather than ``start()``.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time
from enum import Enum
from typing import TYPE_CHECKING, Any

from aiokafka.admin import AIOKafkaAdminClient
from aiokafka.errors import KafkaError
from faststream.kafka import KafkaBroker
from faststream.security import BaseSecurity, SASLPlaintext, SASLScram256, SASLScram512

if TYPE_CHECKING:
    from outbox_service.infra.events.outbox.mode import PublisherEnabled

logger = logging.getLogger(__name__)

_AIOKAFKA_MECHANISMS = {
    "plain": "PLAIN",
    "scram-sha-256": "SCRAM-SHA-256",
    "scram-sha-512": "SCRAM-SHA-512",
}


class ConnectionState(str, Enum):
    """Connection states for the Kafka broker."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


def build_security(config: PublisherEnabled) -> BaseSecurity | None:
    """FastStream security object for the configured TLS flag and credentials."""
    ssl_context = ssl.create_default_context() if config.ssl else None
    creds = config.credentials

    if creds is None:
        if ssl_context is None:
            return None
        return BaseSecurity(ssl_context=ssl_context, use_ssl=True)

    security_cls = {
        "plain": SASLPlaintext,
        "scram-sha-256": SASLScram256,
        "scram-sha-512": SASLScram512,
    }[creds.mechanism]
    return security_cls(
        username=creds.username,
        password=creds.password,
        ssl_context=ssl_context,
        use_ssl=config.ssl,
    )


def build_aiokafka_security(config: PublisherEnabled) -> dict[str, Any]:
    """aiokafka client kwargs for the configured TLS flag and credentials.

    Returns an empty dict for PLAINTEXT connections.
    """
    creds = config.credentials
    if creds is None and not config.ssl:
        return {}

    security: dict[str, Any] = {}
    if config.ssl:
        security["ssl_context"] = ssl.create_default_context()

    if creds is None:
        security["security_protocol"] = "SSL"
        return security

    security["security_protocol"] = "SASL_SSL" if config.ssl else "SASL_PLAINTEXT"
    security["sasl_mechanism"] = _AIOKAFKA_MECHANISMS[creds.mechanism]
    security["sasl_plain_username"] = creds.username
    security["sasl_plain_password"] = creds.password
    return security


def create_kafka_broker(config: PublisherEnabled) -> KafkaBroker:
    """Build a producer-only KafkaBroker.

    ``acks="all"`` so an acknowledged send means every in-sync replica has
    the message before the event is marked SENT.
    """
    return KafkaBroker(
        list(config.brokers),
        client_id=config.client_id,
        security=build_security(config),
        request_timeout_ms=int(config.send_timeout * 1000),
        acks="all",
        graceful_timeout=config.graceful_timeout,
        logger=logger,
    )


async def start_broker(broker: KafkaBroker, *, timeout: float) -> None:
    """Connect the broker, bounded by ``timeout``.

    Raises:
        ConnectionError: If the connection fails or does not complete in time.
    """
    logger.info("Connecting to Kafka", extra={"connection_timeout": timeout})
    try:
        await asyncio.wait_for(broker.connect(), timeout=timeout)
    except TimeoutError as e:
        error_msg = f"Kafka connection timeout after {timeout}s"
        logger.error(error_msg, extra={"timeout": timeout})
        raise ConnectionError(error_msg) from e
    except (OSError, KafkaError) as e:
        error_msg = f"Kafka connection failed: {e}"
        logger.error(error_msg, extra={"error": str(e)})
        raise ConnectionError(error_msg) from e
    logger.info("Kafka broker connected")


async def stop_broker(broker: KafkaBroker) -> None:
    """Close the broker connection, logging rather than raising on failure."""
    try:
        await broker.close()
        logger.info("Kafka broker connection closed")
    except Exception as e:
        logger.exception("Error closing Kafka broker", extra={"error": str(e)})


class KafkaTopicCatalog:
    """Cached set of topic names that exist on the cluster.

    Used to refuse producing to unknown topics so a misconfigured topic
    surfaces as a delivery failure instead of being silently auto-created.
    A lookup miss forces a refresh (bounded to one per ``min_refresh_interval``)
    so topics created after the last fetch are picked up quickly.
    """

    def __init__(
        self,
        admin: AIOKafkaAdminClient,
        *,
        ttl: float = 60.0,
        min_refresh_interval: float = 1.0,
    ) -> None:
        self._admin = admin
        self._ttl = ttl
        self._min_refresh_interval = min_refresh_interval
        self._topics: frozenset[str] = frozenset()
        self._fetched_at: float | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: PublisherEnabled) -> KafkaTopicCatalog:
        admin = AIOKafkaAdminClient(
            bootstrap_servers=list(config.brokers),
            client_id=f"{config.client_id}-admin",
            request_timeout_ms=int(config.send_timeout * 1000),
            **build_aiokafka_security(config),
        )
        return cls(admin, ttl=config.topic_metadata_ttl)

    async def start(self, *, timeout: float | None = None) -> None:
        """Connect the admin client.

        Raises:
            ConnectionError: If the connection fails or does not complete in time.
        """
        try:
            await asyncio.wait_for(self._admin.start(), timeout=timeout)
        except TimeoutError as e:
            raise ConnectionError(f"Kafka admin connection timeout after {timeout}s") from e
        except (OSError, KafkaError) as e:
            raise ConnectionError(f"Kafka admin connection failed: {e}") from e

    async def close(self) -> None:
        try:
            await self._admin.close()
        except Exception as e:
            logger.exception("Error closing Kafka admin client", extra={"error": str(e)})

    def _age(self) -> float | None:
        if self._fetched_at is None:
            return None
        return time.monotonic() - self._fetched_at

    async def refresh(self) -> frozenset[str]:
        async with self._lock:
            topics = await self._admin.list_topics()
            self._topics = frozenset(topics)
            self._fetched_at = time.monotonic()
            logger.debug("Refreshed Kafka topic metadata", extra={"topic_count": len(self._topics)})
            return self._topics

    async def exists(self, topic: str) -> bool:
        age = self._age()
        if age is None or age >= self._ttl:
            await self.refresh()
        elif topic not in self._topics and age >= self._min_refresh_interval:
            await self.refresh()
        return topic in self._topics
