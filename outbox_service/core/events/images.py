"""Events emitted by the image upload flow."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from outbox_service.core.events.base import DomainEvent


class ImageUploadedEvent(DomainEvent):
    """An image was stored and its metadata committed.

    Keyed by ``external_id`` so every event about one image lands on the
    same partition.
    """

    event_type: ClassVar[str] = "image.uploaded"
    event_version: ClassVar[int] = 1
    topic: ClassVar[str] = "image.uploaded"

    external_id: str
    entity_type: str
    entity_id: str
    image_type: str
    original_name: str
    mime_type: str
    extension: str
    size: int
    width: int | None = None
    height: int | None = None
    storage: str
    path: str
    checksum: str
    created_at: datetime

    def partition_key(self) -> str | None:
        return self.external_id
