"""Database dependencies for FastAPI route handlers.

Route handlers take ``SessionDep``; CLI commands and background work use
``infra.database.get_async_session`` directly. Both draw from the same
session factory.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from outbox_service.infra.database import get_async_session


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """FastAPI dependency for a request-scoped database session.

    Example:
        @router.get("/outbox/stats")
        async def stats(session: SessionDep):
            ...
    """
    async with get_async_session() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
