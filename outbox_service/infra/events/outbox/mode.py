"""Startup decision between a disabled and an enabled outbox publisher.

The decision is made once from ``OutboxSettings`` and never re-evaluated
while the process runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from outbox_service.core.exceptions import OutboxConfigurationError
from outbox_service.infra.events.outbox.backoff import BackoffPolicy

if TYPE_CHECKING:
    from outbox_service.core.settings.outbox import OutboxSettings, SaslMechanism

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class KafkaCredentials:
    mechanism: SaslMechanism
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class PublisherDisabled:
    """The publisher does not run; outbox rows stay PENDING."""

    reason: str


@dataclass(frozen=True, slots=True)
class PublisherEnabled:
    """Everything the running publisher needs, resolved from settings."""

    brokers: tuple[str, ...]
    client_id: str = "outbox-service"
    ssl: bool = False
    credentials: KafkaCredentials | None = None
    poll_interval: float = 2.0
    batch_size: int = 100
    max_attempts: int = 10
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    lease_timeout: timedelta = timedelta(minutes=5)
    send_timeout: float = 30.0
    connect_timeout: float = 10.0
    graceful_timeout: float = 15.0
    verify_topics: bool = True
    topic_metadata_ttl: float = 60.0


PublisherMode = PublisherDisabled | PublisherEnabled


def resolve_credentials(settings: OutboxSettings) -> KafkaCredentials | None:
    """Both username and password, or neither.

    Raises:
        OutboxConfigurationError: If only one half of the pair is set.
    """
    username = settings.username
    password = settings.password.get_secret_value()
    if bool(username) != bool(password):
        raise OutboxConfigurationError(
            "Kafka auth requires both KAFKA_USERNAME and KAFKA_PASSWORD"
        )
    if not username:
        return None
    return KafkaCredentials(
        mechanism=settings.sasl_mechanism,
        username=username,
        password=password,
    )


def resolve_publisher_mode(settings: OutboxSettings) -> PublisherMode:
    """Decide whether the publisher runs, and with which configuration.

    A disabled flag and an empty broker list are both valid "off" states.

    Raises:
        OutboxConfigurationError: On a mismatched credential pair.
    """
    if not settings.enabled:
        return PublisherDisabled(reason="KAFKA_ENABLED is false")

    brokers = tuple(settings.broker_list)
    if not brokers:
        logger.warning("Kafka outbox publisher enabled but KAFKA_BROKERS is empty; not starting")
        return PublisherDisabled(reason="KAFKA_BROKERS is empty")

    return PublisherEnabled(
        brokers=brokers,
        client_id=settings.client_id,
        ssl=settings.ssl,
        credentials=resolve_credentials(settings),
        poll_interval=settings.poll_interval,
        batch_size=settings.outbox_batch_size,
        max_attempts=settings.outbox_max_attempts,
        backoff=BackoffPolicy(
            base_delay=settings.outbox_base_delay_ms / 1000,
            cap_delay=settings.outbox_max_delay_ms / 1000,
            jitter=settings.outbox_backoff_jitter,
        ),
        lease_timeout=timedelta(milliseconds=settings.outbox_lease_timeout_ms),
        send_timeout=settings.send_timeout,
        connect_timeout=settings.connect_timeout,
        graceful_timeout=settings.graceful_timeout,
        verify_topics=settings.verify_topics,
        topic_metadata_ttl=settings.topic_metadata_ttl_ms / 1000,
    )
