"""Domain event base class and the outbox message envelope.

Every event is delivered wrapped in the same envelope::

    {
        "eventId": "...",
        "eventType": "image.uploaded",
        "eventVersion": 1,
        "occurredAt": "2025-01-01T00:00:00.000000Z",
        "data": {...}
    }

``data`` holds the subclass fields, serialized with camelCase keys.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from outbox_service.core.database.base import generate_uuid7

_ENVELOPE_FIELDS = frozenset({"event_id", "occurred_at"})


class DomainEvent(BaseModel):
    """Base class for events staged in the outbox.

    Subclasses must define:
    - event_type: ClassVar[str] - Unique event type identifier (e.g., "image.uploaded")
    - topic: ClassVar[str] - Default destination topic

    and may override ``event_version`` and ``partition_key()``.

    Example:
        class ImageUploadedEvent(DomainEvent):
            event_type: ClassVar[str] = "image.uploaded"
            topic: ClassVar[str] = "image.uploaded"

            external_id: str

            def partition_key(self) -> str | None:
                return self.external_id
    """

    event_type: ClassVar[str] = "domain.event"
    event_version: ClassVar[int] = 1
    topic: ClassVar[str] = ""

    event_id: str = Field(
        default_factory=lambda: str(generate_uuid7()),
        description="Unique event identifier (UUID v7 for time-ordering)",
    )
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event occurred (UTC)",
    )

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.event_type == "domain.event":
            raise TypeError(f"{cls.__name__} must define 'event_type' class variable")

    def partition_key(self) -> str | None:
        """Kafka message key; events sharing a key keep their relative order."""
        return None

    def to_outbox_payload(self) -> dict[str, Any]:
        """Serialize the event into the outbox envelope."""
        return {
            "eventId": self.event_id,
            "eventType": self.event_type,
            "eventVersion": self.event_version,
            "occurredAt": self.occurred_at.astimezone(UTC).isoformat().replace("+00:00", "Z"),
            "data": self.model_dump(mode="json", by_alias=True, exclude=set(_ENVELOPE_FIELDS)),
        }
