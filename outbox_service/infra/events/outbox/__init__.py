"""Transactional outbox publisher.

Producers stage ``OutboxEvent`` rows in the same transaction as their
business writes. The publisher relays them to Kafka with at-least-once
semantics:

- ``OutboxClaimer`` locks due rows (FOR UPDATE SKIP LOCKED) and marks them PROCESSING
- ``KafkaDeliveryClient`` sends one event and reports success or failure
- ``OutboxPublishCycle`` applies the SENT / retry / FAILED transitions
- ``OutboxScheduler`` owns the broker connection and runs cycles on an interval

Usage:
    from outbox_service.infra.events.outbox import start_outbox_publisher

    scheduler = await start_outbox_publisher()
    ...
    await stop_outbox_publisher()
"""

from __future__ import annotations

from outbox_service.infra.events.outbox.backoff import BackoffPolicy
from outbox_service.infra.events.outbox.claimer import ClaimedEvent, OutboxClaimer
from outbox_service.infra.events.outbox.delivery import DeliveryResult, KafkaDeliveryClient
from outbox_service.infra.events.outbox.mode import (
    KafkaCredentials,
    PublisherDisabled,
    PublisherEnabled,
    PublisherMode,
    resolve_publisher_mode,
)
from outbox_service.infra.events.outbox.models import OutboxEvent, OutboxStatus
from outbox_service.infra.events.outbox.processor import CycleReport, OutboxPublishCycle
from outbox_service.infra.events.outbox.repository import OutboxRepository
from outbox_service.infra.events.outbox.scheduler import (
    OutboxScheduler,
    get_outbox_publisher,
    start_outbox_publisher,
    stop_outbox_publisher,
)

__all__ = [
    "BackoffPolicy",
    "ClaimedEvent",
    "CycleReport",
    "DeliveryResult",
    "KafkaCredentials",
    "KafkaDeliveryClient",
    "OutboxClaimer",
    "OutboxEvent",
    "OutboxPublishCycle",
    "OutboxRepository",
    "OutboxScheduler",
    "OutboxStatus",
    "PublisherDisabled",
    "PublisherEnabled",
    "PublisherMode",
    "get_outbox_publisher",
    "resolve_publisher_mode",
    "start_outbox_publisher",
    "stop_outbox_publisher",
]
