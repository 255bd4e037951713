"""
Card inventory endpoints.

CRUD plus the pricing views used by the desktop client. Remote-mode clients
reach storage exclusively through these routes.
"""

from typing import Annotated

from fastapi import APIRouter, Query, status

from cardledger.api.dependencies import CardRepositoryDep, ChecklistCacheDep
from cardledger.config import settings
from cardledger.models.card import Card, CardStats, CardStatus
from cardledger.models.failure import NotFoundError

router = APIRouter(prefix="/api/cards", tags=["cards"])


@router.get("", response_model=list[Card])
async def list_cards(
    repository: CardRepositoryDep,
    status_filter: Annotated[CardStatus | None, Query(alias="status")] = None,
) -> list[Card]:
    """List cards, newest first."""
    return await repository.list_cards(status_filter)


@router.get("/unpriced", response_model=list[Card])
async def list_unpriced(repository: CardRepositoryDep) -> list[Card]:
    """Cards with no listing price or a zero listing price."""
    return await repository.list_unpriced()


@router.get("/stale", response_model=list[Card])
async def list_stale(
    repository: CardRepositoryDep,
    threshold_days: Annotated[int, Query(ge=0)] = settings.price_staleness_threshold_days,
) -> list[Card]:
    """
    Cards due for repricing.

    Excludes sold and draft cards. Oldest price first.
    """
    return await repository.list_stale(threshold_days)


@router.get("/stats", response_model=CardStats)
async def get_stats(repository: CardRepositoryDep) -> CardStats:
    return await repository.get_stats()


@router.get("/{card_id}", response_model=Card)
async def get_card(card_id: int, repository: CardRepositoryDep) -> Card:
    card = await repository.get_card(card_id)
    if card is None:
        raise NotFoundError(f"Card {card_id} not found")
    return card


@router.post("", response_model=Card, status_code=status.HTTP_201_CREATED)
async def create_card(
    card: Card,
    repository: CardRepositoryDep,
    cache: ChecklistCacheDep,
) -> Card:
    """
    Add a card to the inventory.

    The saved card also feeds the checklist for its set.
    """
    created = await repository.create_card(card)
    await cache.learn_from_card(created)
    return created


@router.put("/{card_id}", response_model=Card)
async def update_card(card_id: int, card: Card, repository: CardRepositoryDep) -> Card:
    """Replace a card. The id in the path wins over any id in the body."""
    return await repository.update_card(card.model_copy(update={"id": card_id}))


@router.delete("/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_card(card_id: int, repository: CardRepositoryDep) -> None:
    await repository.delete_card(card_id)
