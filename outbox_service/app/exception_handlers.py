"""Global exception handlers for the FastAPI application."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from outbox_service.core.exceptions import AppException

logger = logging.getLogger(__name__)


def _create_problem_detail(
    status_code: int,
    detail: str,
    type_: str = "about:blank",
    title: str | None = None,
    instance: str | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create an RFC 7807 Problem Details body."""
    problem: dict[str, Any] = {
        "type": type_,
        "title": title or "Error",
        "status": status_code,
        "detail": detail,
    }
    if instance:
        problem["instance"] = instance
    if extra:
        problem.update(extra)
    return problem


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Convert AppException instances into Problem Details responses.

    Args:
        request: The FastAPI request object.
        exc: The application exception that was raised.

    Returns:
        JSONResponse with RFC 7807 Problem Details format.
    """
    logger.warning(
        "Application exception occurred",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": exc.type,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_create_problem_detail(
            status_code=exc.status_code,
            detail=exc.detail,
            type_=exc.type,
            title=exc.title,
            instance=str(request.url),
            extra=exc.extra,
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler: log the traceback and return a generic 500."""
    logger.error(
        "Unexpected exception occurred",
        extra={
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        },
        exc_info=True,
    )

    # Don't expose internal details
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_create_problem_detail(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while processing your request",
            type_="internal-error",
            title="Internal Server Error",
            instance=str(request.url),
        ),
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """Register the exception handlers on the application.

    Example:
        app = FastAPI()
        configure_exception_handlers(app)
    """
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.debug("Exception handlers configured")
