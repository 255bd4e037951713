"""
Checklist endpoints.

Read access to the checklist cache, the miss report, and a merge entry
point for enrichment tools.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from cardledger.api.dependencies import ChecklistCacheDep
from cardledger.config import settings
from cardledger.models.checklist import (
    ChecklistCard,
    ChecklistKey,
    DataSource,
    MissingChecklistRecord,
    SetChecklist,
    is_stale,
)
from cardledger.models.failure import NotFoundError
from cardledger.services.seed_data import SeedCardDefinition

router = APIRouter(prefix="/checklists", tags=["checklists"])


class ChecklistCardResponse(BaseModel):
    card_number: str
    player_name: str
    team: str | None = None
    is_rookie: bool = False
    subset: str | None = None
    source: str


class ChecklistResponse(BaseModel):
    """Response model for a set checklist."""

    id: int | None
    manufacturer: str
    brand: str
    year: int
    sport: str | None = None
    total_base_cards: int
    card_count: int
    cards: list[ChecklistCardResponse] = Field(default_factory=list)
    known_variations: list[str] = Field(default_factory=list)
    data_source: str
    cached_at: datetime
    last_enriched_at: datetime
    stale: bool = Field(
        default=False,
        description="Old enough to be worth enriching again",
    )

    @classmethod
    def from_checklist(cls, checklist: SetChecklist) -> "ChecklistResponse":
        return cls(
            id=checklist.id,
            manufacturer=checklist.key.manufacturer,
            brand=checklist.key.brand,
            year=checklist.key.year,
            sport=checklist.key.sport,
            total_base_cards=checklist.total_base_cards,
            card_count=len(checklist.cards),
            cards=[ChecklistCardResponse(**card.to_dict()) for card in checklist.cards],
            known_variations=checklist.known_variations,
            data_source=checklist.data_source,
            cached_at=checklist.cached_at,
            last_enriched_at=checklist.last_enriched_at,
            stale=is_stale(checklist, settings.enrichment_max_age_days),
        )


class MissingChecklistResponse(BaseModel):
    manufacturer: str
    brand: str
    year: int
    sport: str | None = None
    hit_count: int
    first_seen: datetime
    last_seen: datetime

    @classmethod
    def from_record(cls, record: MissingChecklistRecord) -> "MissingChecklistResponse":
        return cls(
            manufacturer=record.key.manufacturer,
            brand=record.key.brand,
            year=record.key.year,
            sport=record.key.sport,
            hit_count=record.hit_count,
            first_seen=record.first_seen,
            last_seen=record.last_seen,
        )


class MergeRequest(BaseModel):
    """Request model for merging cards and variations into a checklist."""

    manufacturer: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1)
    year: int
    sport: str | None = None
    cards: list[SeedCardDefinition] = Field(default_factory=list)
    variations: list[str] = Field(default_factory=list)
    source: DataSource = DataSource.ENRICHED
    total_base_cards: int = Field(default=0, ge=0)

    @property
    def key(self) -> ChecklistKey:
        return ChecklistKey(
            manufacturer=self.manufacturer,
            brand=self.brand,
            year=self.year,
            sport=self.sport or None,
        )


class MergeResponse(BaseModel):
    created: bool
    cards_added: int
    variations_added: int
    checklist: ChecklistResponse


@router.get("", response_model=list[ChecklistResponse])
async def list_checklists(cache: ChecklistCacheDep) -> list[ChecklistResponse]:
    """All checklists ordered by manufacturer, brand, year."""
    return [ChecklistResponse.from_checklist(c) for c in await cache.list_checklists()]


@router.get("/missing", response_model=list[MissingChecklistResponse])
async def list_missing(cache: ChecklistCacheDep) -> list[MissingChecklistResponse]:
    """Sets that were looked up and not found, most requested first."""
    return [MissingChecklistResponse.from_record(r) for r in await cache.list_missing()]


@router.get("/lookup", response_model=ChecklistResponse)
async def lookup_checklist(
    cache: ChecklistCacheDep,
    manufacturer: Annotated[str, Query(min_length=1)],
    brand: Annotated[str, Query(min_length=1)],
    year: int,
    sport: str | None = None,
) -> ChecklistResponse:
    """
    Find the checklist for a set.

    A failed lookup is counted in the miss report and answers 404.
    """
    key = ChecklistKey(manufacturer=manufacturer, brand=brand, year=year, sport=sport or None)
    result = await cache.lookup_or_record_miss(key)
    if result.checklist is None:
        hits = result.miss.hit_count if result.miss else 0
        raise NotFoundError(f"No checklist for {key}", detail=f"hit_count={hits}")
    return ChecklistResponse.from_checklist(result.checklist)


@router.get("/{checklist_id}", response_model=ChecklistResponse)
async def get_checklist(checklist_id: int, cache: ChecklistCacheDep) -> ChecklistResponse:
    checklist = await cache.get_checklist(checklist_id)
    if checklist is None:
        raise NotFoundError(f"Checklist {checklist_id} not found")
    return ChecklistResponse.from_checklist(checklist)


@router.post("/merge", response_model=MergeResponse)
async def merge_checklist(request: MergeRequest, cache: ChecklistCacheDep) -> MergeResponse:
    """
    Merge cards and variations into a checklist, creating it if needed.

    Existing cards are never overwritten and the data source never moves
    down in rank.
    """
    result = await cache.merge(
        request.key,
        [
            ChecklistCard(
                card_number=card.card_number,
                player_name=card.player_name,
                team=card.team,
                is_rookie=card.is_rookie,
                subset=card.subset,
            )
            for card in request.cards
        ],
        request.variations,
        request.source,
        request.total_base_cards,
    )
    return MergeResponse(
        created=result.created,
        cards_added=result.cards_added,
        variations_added=result.variations_added,
        checklist=ChecklistResponse.from_checklist(result.checklist),
    )
