"""Outbox inspection endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from outbox_service.core.dependencies import SessionDep  # noqa: TC001
from outbox_service.features.outbox.schemas import OutboxStatsResponse
from outbox_service.features.outbox.service import collect_outbox_stats

router = APIRouter(prefix="/outbox", tags=["outbox"])


@router.get(
    "/stats",
    response_model=OutboxStatsResponse,
    summary="Outbox backlog statistics",
)
async def outbox_stats(session: SessionDep) -> OutboxStatsResponse:
    """Return per-status counts, the oldest PENDING age and the publisher state."""
    return await collect_outbox_stats(session)
