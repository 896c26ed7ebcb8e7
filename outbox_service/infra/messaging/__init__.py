"""Kafka messaging infrastructure (FastStream broker, aiokafka metadata)."""

from __future__ import annotations

from .broker import (
    ConnectionState,
    KafkaTopicCatalog,
    build_aiokafka_security,
    build_security,
    create_kafka_broker,
    start_broker,
    stop_broker,
)

__all__ = [
    "ConnectionState",
    "KafkaTopicCatalog",
    "build_aiokafka_security",
    "build_security",
    "create_kafka_broker",
    "start_broker",
    "stop_broker",
]
