"""Transactional outbox publisher service."""

__version__ = "0.1.0"
