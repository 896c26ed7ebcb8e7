"""Domain events and the producer-side outbox publisher."""

from __future__ import annotations

from outbox_service.core.events.base import DomainEvent
from outbox_service.core.events.images import ImageUploadedEvent
from outbox_service.core.events.publisher import EventPublisher

__all__ = ["DomainEvent", "EventPublisher", "ImageUploadedEvent"]
