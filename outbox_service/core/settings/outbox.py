"""Kafka outbox publisher settings.

Environment variables use KAFKA_ prefix, e.g. KAFKA_ENABLED=true,
KAFKA_BROKERS="kafka-1:9092,kafka-2:9092", KAFKA_OUTBOX_BATCH_SIZE=100.

The publisher is off unless KAFKA_ENABLED is true and at least one broker is
configured. Whether the resolved configuration is usable (credential pairs)
is decided once at startup by ``resolve_publisher_mode``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SaslMechanism = Literal["plain", "scram-sha-256", "scram-sha-512"]


class OutboxSettings(BaseSettings):
    """Broker connection and outbox delivery settings."""

    # ─────────────────────────────────────────────────────
    # Enable/disable toggle
    # ─────────────────────────────────────────────────────
    enabled: bool = Field(
        default=False,
        description="Enable the outbox publisher. When False no broker connection is made.",
    )

    # ─────────────────────────────────────────────────────
    # Connection parameters
    # ─────────────────────────────────────────────────────
    brokers: str = Field(
        default="",
        description="Comma-separated list of bootstrap brokers (host:port).",
    )
    client_id: str = Field(
        default="outbox-service",
        min_length=1,
        max_length=100,
        description="Client id reported to the Kafka cluster.",
    )
    ssl: bool = Field(
        default=False,
        description="Enable TLS for broker connections.",
    )
    sasl_mechanism: SaslMechanism = Field(
        default="plain",
        description="SASL mechanism used when credentials are set.",
    )
    username: str = Field(
        default="",
        max_length=255,
        description="SASL username. Must be set together with the password.",
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="SASL password. Must be set together with the username.",
    )

    # ─────────────────────────────────────────────────────
    # Polling and batching
    # ─────────────────────────────────────────────────────
    outbox_poll_interval_ms: int = Field(
        default=2000,
        ge=10,
        le=3_600_000,
        description="Interval between publish cycles in milliseconds.",
    )
    outbox_batch_size: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Maximum number of events claimed per cycle.",
    )

    # ─────────────────────────────────────────────────────
    # Retry policy
    # ─────────────────────────────────────────────────────
    outbox_max_attempts: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Delivery attempts before an event is marked FAILED.",
    )
    outbox_base_delay_ms: int = Field(
        default=1000,
        ge=1,
        description="Base delay for exponential backoff in milliseconds.",
    )
    outbox_max_delay_ms: int = Field(
        default=900_000,
        ge=1,
        description="Upper bound for a single backoff delay in milliseconds (15 min).",
    )
    outbox_backoff_jitter: bool = Field(
        default=False,
        description="Randomize backoff delays (equal jitter). Off keeps delays deterministic.",
    )
    outbox_lease_timeout_ms: int = Field(
        default=300_000,
        ge=1000,
        description=(
            "How long a PROCESSING claim is honoured before another publisher "
            "may take it over (crash recovery)."
        ),
    )

    # ─────────────────────────────────────────────────────
    # Timeouts
    # ─────────────────────────────────────────────────────
    send_timeout_ms: int = Field(
        default=30_000,
        ge=100,
        le=600_000,
        description="Per-message produce timeout in milliseconds.",
    )
    connect_timeout: float = Field(
        default=10.0,
        ge=1.0,
        le=300.0,
        description="Connection timeout in seconds for the initial broker connection.",
    )
    graceful_timeout: float = Field(
        default=15.0,
        ge=0.1,
        le=300.0,
        description="Seconds to wait for an in-flight cycle on shutdown.",
    )

    # ─────────────────────────────────────────────────────
    # Topic verification
    # ─────────────────────────────────────────────────────
    verify_topics: bool = Field(
        default=True,
        description=(
            "Check that a topic exists before producing to it so that a "
            "misconfigured topic fails visibly instead of being auto-created."
        ),
    )
    topic_metadata_ttl_ms: int = Field(
        default=60_000,
        ge=0,
        description="How long the fetched topic list is reused before refreshing.",
    )

    # ─────────────────────────────────────────────────────
    # Startup behavior
    # ─────────────────────────────────────────────────────
    startup_require_broker: bool = Field(
        default=False,
        description=(
            "If True, application startup fails if the broker is unavailable. "
            "If False, the application starts without the outbox publisher."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="KAFKA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    # ─────────────────────────────────────────────────────
    # Validators
    # ─────────────────────────────────────────────────────
    @field_validator("sasl_mechanism", mode="before")
    @classmethod
    def _normalize_mechanism(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _check_timeouts(self) -> OutboxSettings:
        """A claim lease shorter than a single send would let healthy deliveries be taken over."""
        if self.outbox_lease_timeout_ms <= self.send_timeout_ms:
            raise ValueError(
                "outbox_lease_timeout_ms must be greater than send_timeout_ms "
                f"({self.outbox_lease_timeout_ms} <= {self.send_timeout_ms})"
            )
        if self.outbox_max_delay_ms < self.outbox_base_delay_ms:
            raise ValueError("outbox_max_delay_ms must not be lower than outbox_base_delay_ms")
        return self

    # ─────────────────────────────────────────────────────
    # Computed properties
    # ─────────────────────────────────────────────────────
    @property
    def broker_list(self) -> list[str]:
        """Configured brokers with blanks removed."""
        return [b.strip() for b in self.brokers.split(",") if b.strip()]

    @property
    def is_configured(self) -> bool:
        """Check if the publisher is enabled and has somewhere to connect."""
        return self.enabled and bool(self.broker_list)

    @property
    def poll_interval(self) -> float:
        return self.outbox_poll_interval_ms / 1000

    @property
    def send_timeout(self) -> float:
        return self.send_timeout_ms / 1000
