"""
Health check endpoints.

`/health` answers as long as the process is up. `/ready` only answers 200
once the card store can be queried, which also means schema evolution has
created the tables.
"""

import logging
from importlib.metadata import version as pkg_version
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger.db.checklists import count_checklists
from cardledger.db.database import get_session
from cardledger.db.operations import get_sync_summary

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str | None = None
    database: str | None = None
    card_count: int | None = None
    checklist_count: int | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe. Never touches storage."""
    return HealthResponse(status="healthy", version=pkg_version("cardledger"))


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """
    Readiness probe.

    Reads the card and checklist tables; 503 if either cannot be queried.
    """
    try:
        _, card_count = await get_sync_summary(session)
        checklist_count = await count_checklists(session)
    except SQLAlchemyError as e:
        logger.warning("Card store not ready: %s", e)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", database="unavailable")

    return HealthResponse(
        status="ready",
        database="available",
        card_count=card_count,
        checklist_count=checklist_count,
    )
