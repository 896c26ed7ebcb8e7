"""Custom exception classes for the application."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base HTTP-facing application exception.

    Rendered as RFC 7807 Problem Details by the FastAPI exception handler.

    Attributes:
        status_code: HTTP status code for the error.
        detail: Human-readable error message.
        type: Error type identifier (used in RFC 7807 problem details).
        title: Short, human-readable summary of the problem type.
        extra: Additional context-specific information about the error.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.title = title or self._default_title(status_code)
        self.extra = extra or {}
        super().__init__(detail)

    @staticmethod
    def _default_title(status_code: int) -> str:
        titles = {
            400: "Bad Request",
            404: "Not Found",
            500: "Internal Server Error",
            503: "Service Unavailable",
        }
        return titles.get(status_code, "Error")


class ServiceUnavailableException(AppException):
    """Exception raised when a dependency is temporarily unavailable.

    Example:
        raise ServiceUnavailableException(
            detail="Database is temporarily unavailable",
            extra={"service": "postgresql"},
        )
    """

    def __init__(
        self,
        detail: str,
        type: str = "service-unavailable",
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=503,
            detail=detail,
            type=type,
            title="Service Unavailable",
            extra=extra,
        )


class OutboxError(Exception):
    """Base class for outbox publisher errors."""


class OutboxConfigurationError(OutboxError):
    """The publisher configuration cannot be used.

    Raised once at startup; the publisher is not started but the rest of the
    process keeps running.
    """


class TopicNotFoundError(OutboxError):
    """The destination topic does not exist on the broker."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        super().__init__(f"Topic {topic!r} does not exist on the broker")
