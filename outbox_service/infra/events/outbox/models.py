"""OutboxEvent SQLAlchemy model for the transactional outbox pattern.

The outbox table stores events that need to be published to Kafka. Producers
write rows in the same transaction as their domain changes, so either both
commit or neither does. The publisher claims due rows, delivers them and
records the outcome on the row.

Row lifecycle::

    PENDING ──claim──> PROCESSING ──ack──────────────> SENT
       ^                   │
       └──retry (backoff)──┤
                           └──attempts >= max──────> FAILED

SENT and FAILED are terminal. Rows are never deleted by the publisher.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from outbox_service.core.database.base import Base, TimestampMixin, UUIDv7PKMixin, utc_now

# Kafka rejects topic names longer than 249 characters
MAX_TOPIC_LENGTH = 249
MAX_ERROR_LENGTH = 1000


class OutboxStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (OutboxStatus.SENT, OutboxStatus.FAILED)


class OutboxEvent(Base, UUIDv7PKMixin, TimestampMixin):
    """Outbox row describing one event to deliver.

    Attributes:
        id: UUID v7 primary key, also used as the message correlation id
        topic: Destination Kafka topic
        key: Optional partition key
        event_type: Opaque payload type tag (e.g., "image.uploaded")
        event_version: Opaque payload schema version
        payload: Event body, delivered as JSON
        status: Delivery state, see OutboxStatus
        attempts: Delivery attempts made so far
        next_attempt_at: The row is not claimed before this instant
        published_at: Set when the broker acknowledged the message
        last_error: Last delivery error, truncated
        claimed_at: Start of the current PROCESSING lease
        claim_token: Identifies the publisher holding the lease
    """

    __tablename__ = "event_outbox"

    # Routing
    topic: Mapped[str] = mapped_column(
        String(MAX_TOPIC_LENGTH),
        nullable=False,
        comment="Destination topic",
    )
    key: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Partition key",
    )

    # Event identification
    event_type: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Event type identifier",
    )
    event_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=text("1"),
        comment="Event schema version",
    )
    payload: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        comment="Event body",
    )

    # Delivery state
    status: Mapped[OutboxStatus] = mapped_column(
        Enum(
            OutboxStatus,
            name="outbox_status",
            native_enum=False,
            length=20,
            create_constraint=True,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=OutboxStatus.PENDING,
        server_default=OutboxStatus.PENDING.value,
        index=True,
        comment="Delivery state",
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Delivery attempts made so far",
    )
    next_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
        comment="Earliest time the event may be claimed",
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the broker acknowledged the event",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Last delivery error (truncated)",
    )

    # Claim lease
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Start of the current PROCESSING lease",
    )
    claim_token: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Publisher holding the PROCESSING lease",
    )

    __table_args__ = (
        # Due scan: WHERE status = 'PENDING' AND next_attempt_at <= now ORDER BY created_at
        Index(
            "ix_event_outbox_due",
            "next_attempt_at",
            "created_at",
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        # Lease recovery: WHERE status = 'PROCESSING' AND claimed_at <= cutoff
        Index(
            "ix_event_outbox_claimed",
            "claimed_at",
            postgresql_where=text("status = 'PROCESSING'"),
            sqlite_where=text("status = 'PROCESSING'"),
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return OutboxStatus(self.status).is_terminal

    def __repr__(self) -> str:
        return (
            f"OutboxEvent("
            f"id={self.id}, "
            f"topic={self.topic!r}, "
            f"event_type={self.event_type!r}, "
            f"status={self.status}, "
            f"attempts={self.attempts}"
            f")"
        )


__all__ = ["MAX_ERROR_LENGTH", "MAX_TOPIC_LENGTH", "OutboxEvent", "OutboxStatus"]
