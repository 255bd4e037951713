"""
Sync endpoints.

The wire contract desktop clients depend on:

- GET /sync/status -> {Status, LastUpdated, CardCount, ServerTime}
- GET /sync/cards?since=<timestamp> -> cards updated strictly after since
- POST /sync/push -> {Synced, Failed, Errors}

No authentication; the server is expected to sit on a private network.
"""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body

from cardledger.api.dependencies import CardRepositoryDep
from cardledger.models.card import EARLIEST, Card
from cardledger.models.sync import PushSummary, SyncStatus
from cardledger.services.sync import SyncCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatus)
async def sync_status(repository: CardRepositoryDep) -> SyncStatus:
    """Server liveness plus the latest card update and card count."""
    last_updated, card_count = await repository.sync_summary()
    return SyncStatus(last_updated=last_updated or EARLIEST, card_count=card_count)


@router.get("/cards", response_model=list[Card])
async def changed_cards(
    repository: CardRepositoryDep,
    since: datetime | None = None,
) -> list[Card]:
    """All cards when `since` is omitted."""
    feed = await repository.list_changes(since)
    return feed.cards


@router.post("/push", response_model=PushSummary)
async def push_cards(
    records: Annotated[list[Any], Body()],
    repository: CardRepositoryDep,
) -> PushSummary:
    """
    Apply pushed cards to existing server records.

    Records are validated and applied one at a time. Unknown ids are
    reported and skipped, never created.
    """
    coordinator = SyncCoordinator(remote=repository, log=logger)
    result = await coordinator.push(records)
    return result.to_summary()
