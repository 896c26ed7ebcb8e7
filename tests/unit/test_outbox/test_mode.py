"""Unit tests for resolving the publisher mode from settings."""

from __future__ import annotations

from datetime import timedelta

import pytest
from faststream.security import BaseSecurity, SASLPlaintext, SASLScram256
from pydantic import ValidationError

from outbox_service.core.exceptions import OutboxConfigurationError
from outbox_service.core.settings.outbox import OutboxSettings
from outbox_service.infra.events.outbox.mode import (
    KafkaCredentials,
    PublisherDisabled,
    PublisherEnabled,
    resolve_publisher_mode,
)
from outbox_service.infra.messaging.broker import build_aiokafka_security, build_security

pytestmark = pytest.mark.unit


def _settings(**values) -> OutboxSettings:
    return OutboxSettings(_env_file=None, **values)


class TestResolvePublisherMode:
    """Tests for resolve_publisher_mode."""

    def test_disabled_flag(self):
        mode = resolve_publisher_mode(_settings(enabled=False, brokers="kafka:9092"))

        assert mode == PublisherDisabled(reason="KAFKA_ENABLED is false")

    def test_no_brokers_is_disabled(self):
        mode = resolve_publisher_mode(_settings(enabled=True, brokers=" , "))

        assert isinstance(mode, PublisherDisabled)
        assert "KAFKA_BROKERS" in mode.reason

    def test_enabled_converts_units(self):
        mode = resolve_publisher_mode(
            _settings(
                enabled=True,
                brokers="kafka-1:9092,kafka-2:9092",
                outbox_poll_interval_ms=500,
                outbox_batch_size=25,
                outbox_max_attempts=4,
                outbox_base_delay_ms=250,
                outbox_max_delay_ms=60_000,
                outbox_lease_timeout_ms=120_000,
                send_timeout_ms=5_000,
                topic_metadata_ttl_ms=30_000,
            )
        )

        assert isinstance(mode, PublisherEnabled)
        assert mode.brokers == ("kafka-1:9092", "kafka-2:9092")
        assert mode.poll_interval == 0.5
        assert mode.batch_size == 25
        assert mode.max_attempts == 4
        assert mode.backoff.base_delay == 0.25
        assert mode.backoff.cap_delay == 60.0
        assert mode.lease_timeout == timedelta(minutes=2)
        assert mode.send_timeout == 5.0
        assert mode.topic_metadata_ttl == 30.0
        assert mode.credentials is None

    def test_defaults(self):
        mode = resolve_publisher_mode(_settings(enabled=True, brokers="kafka:9092"))

        assert mode.poll_interval == 2.0
        assert mode.batch_size == 100
        assert mode.max_attempts == 10
        assert mode.backoff.base_delay == 1.0
        assert mode.backoff.cap_delay == 900.0
        assert mode.backoff.jitter is False
        assert mode.lease_timeout == timedelta(minutes=5)

    def test_credentials_pair(self):
        mode = resolve_publisher_mode(
            _settings(
                enabled=True,
                brokers="kafka:9092",
                username="svc",
                password="s3cret",
                sasl_mechanism=" SCRAM-SHA-512 ",
            )
        )

        assert mode.credentials == KafkaCredentials(
            mechanism="scram-sha-512", username="svc", password="s3cret"
        )
        assert "s3cret" not in repr(mode)

    @pytest.mark.parametrize(
        "values",
        [{"username": "svc"}, {"password": "s3cret"}],
        ids=["username-only", "password-only"],
    )
    def test_half_credentials_rejected(self, values):
        with pytest.raises(OutboxConfigurationError):
            resolve_publisher_mode(_settings(enabled=True, brokers="kafka:9092", **values))

    def test_half_credentials_ignored_when_disabled(self):
        mode = resolve_publisher_mode(_settings(enabled=False, username="svc"))

        assert isinstance(mode, PublisherDisabled)


class TestOutboxSettingsValidation:
    """Tests for cross-field validation of OutboxSettings."""

    def test_lease_must_exceed_send_timeout(self):
        with pytest.raises(ValidationError, match="outbox_lease_timeout_ms"):
            _settings(outbox_lease_timeout_ms=10_000, send_timeout_ms=10_000)

    def test_max_delay_not_below_base(self):
        with pytest.raises(ValidationError, match="outbox_max_delay_ms"):
            _settings(outbox_base_delay_ms=5000, outbox_max_delay_ms=1000)

    def test_unknown_mechanism_rejected(self):
        with pytest.raises(ValidationError):
            _settings(sasl_mechanism="gssapi")

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("KAFKA_ENABLED", "true")
        monkeypatch.setenv("KAFKA_BROKERS", "kafka:9092")
        monkeypatch.setenv("KAFKA_OUTBOX_BATCH_SIZE", "7")

        settings = _settings()

        assert settings.is_configured is True
        assert settings.outbox_batch_size == 7


class TestSecurity:
    """Tests for broker security construction."""

    def test_plaintext(self):
        config = PublisherEnabled(brokers=("kafka:9092",))

        assert build_security(config) is None
        assert build_aiokafka_security(config) == {}

    def test_tls_only(self):
        config = PublisherEnabled(brokers=("kafka:9093",), ssl=True)

        security = build_security(config)
        kwargs = build_aiokafka_security(config)

        assert type(security) is BaseSecurity
        assert kwargs["security_protocol"] == "SSL"
        assert kwargs["ssl_context"] is not None

    def test_sasl_plain_without_tls(self):
        config = PublisherEnabled(
            brokers=("kafka:9092",),
            credentials=KafkaCredentials(mechanism="plain", username="svc", password="pw"),
        )

        assert isinstance(build_security(config), SASLPlaintext)
        assert build_aiokafka_security(config) == {
            "security_protocol": "SASL_PLAINTEXT",
            "sasl_mechanism": "PLAIN",
            "sasl_plain_username": "svc",
            "sasl_plain_password": "pw",
        }

    def test_scram_over_tls(self):
        config = PublisherEnabled(
            brokers=("kafka:9093",),
            ssl=True,
            credentials=KafkaCredentials(mechanism="scram-sha-256", username="svc", password="pw"),
        )

        assert isinstance(build_security(config), SASLScram256)
        kwargs = build_aiokafka_security(config)
        assert kwargs["security_protocol"] == "SASL_SSL"
        assert kwargs["sasl_mechanism"] == "SCRAM-SHA-256"
