"""
Bundled checklist definitions.

Definitions ship as JSON files under cardledger/data/seed_checklists, one
set per file, in the same format used for checklist import and export:

    {
      "manufacturer": "Panini",
      "brand": "Prizm",
      "year": 2023,
      "sport": "Football",
      "totalBaseCards": 400,
      "cards": [{"card_number": "1", "player_name": "...", "team": "...",
                 "is_rookie": false}],
      "knownVariations": ["Silver", "Red White Blue"]
    }

Files are read eagerly but parsed lazily, so one malformed file is
reported on its own without hiding the others.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cardledger.models.checklist import ChecklistCard, ChecklistKey, DataSource, SetChecklist
from cardledger.models.failure import SeedEntryError

logger = logging.getLogger(__name__)

# Bundled definitions (package data)
SEED_DATA_DIR = Path(__file__).parent.parent / "data" / "seed_checklists"


class SeedCardDefinition(BaseModel):
    """One card entry in a checklist definition."""

    card_number: str = Field(..., min_length=1)
    player_name: str = ""
    team: str | None = None
    is_rookie: bool = False
    subset: str | None = None

    @field_validator("card_number", mode="before")
    @classmethod
    def _coerce_card_number(cls, value: Any) -> Any:
        # Some sources write card numbers as bare JSON integers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class SeedChecklistDefinition(BaseModel):
    """A complete checklist in the import/export file format."""

    model_config = ConfigDict(populate_by_name=True)

    manufacturer: str = Field(..., min_length=1)
    brand: str = Field(..., min_length=1)
    year: int = Field(..., ge=1800)
    sport: str | None = None
    total_base_cards: int = Field(default=0, ge=0, alias="totalBaseCards")
    cards: list[SeedCardDefinition] = Field(default_factory=list)
    known_variations: list[str] = Field(default_factory=list, alias="knownVariations")

    @field_validator("sport")
    @classmethod
    def _blank_sport_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value

    @property
    def key(self) -> ChecklistKey:
        return ChecklistKey(
            manufacturer=self.manufacturer,
            brand=self.brand,
            year=self.year,
            sport=self.sport,
        )

    def matches(self, key: ChecklistKey) -> bool:
        """Case-insensitive match against a checklist key."""
        return (
            self.manufacturer.casefold() == key.manufacturer.casefold()
            and self.brand.casefold() == key.brand.casefold()
            and self.year == key.year
            and (self.sport or "").casefold() == (key.sport or "").casefold()
        )

    def checklist_cards(self, source: DataSource) -> list[ChecklistCard]:
        """Cards of this definition tagged with the given provenance."""
        return [
            ChecklistCard(
                card_number=card.card_number,
                player_name=card.player_name,
                team=card.team,
                is_rookie=card.is_rookie,
                subset=card.subset,
                source=source.value,
            )
            for card in self.cards
        ]

    @classmethod
    def from_checklist(cls, checklist: SetChecklist) -> "SeedChecklistDefinition":
        return cls(
            manufacturer=checklist.key.manufacturer,
            brand=checklist.key.brand,
            year=checklist.key.year,
            sport=checklist.key.sport,
            total_base_cards=checklist.total_base_cards,
            cards=[
                SeedCardDefinition(
                    card_number=card.card_number,
                    player_name=card.player_name,
                    team=card.team,
                    is_rookie=card.is_rookie,
                    subset=card.subset,
                )
                for card in checklist.cards
            ],
            known_variations=list(checklist.known_variations),
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


@dataclass(frozen=True)
class BundledDefinition:
    """Raw text of one definition file, named for error reporting."""

    name: str
    content: str


def load_bundled_definitions(directory: Path | None = None) -> list[BundledDefinition]:
    """
    Read every *.json definition in a directory, sorted by file name.

    Returns an empty list if the directory does not exist.
    """
    directory = directory or SEED_DATA_DIR
    if not directory.is_dir():
        logger.warning("Seed checklist directory not found: %s", directory)
        return []

    return [
        BundledDefinition(name=path.name, content=path.read_text(encoding="utf-8"))
        for path in sorted(directory.glob("*.json"))
    ]


def parse_definition(bundled: BundledDefinition) -> SeedChecklistDefinition:
    """
    Parse one bundled definition.

    Raises:
        SeedEntryError: If the JSON is malformed or fails validation
    """
    try:
        return SeedChecklistDefinition.model_validate_json(bundled.content)
    except ValidationError as e:
        raise SeedEntryError(bundled.name, "invalid checklist definition", detail=str(e)) from e


def find_definition(
    key: ChecklistKey,
    definitions: list[BundledDefinition],
) -> SeedChecklistDefinition | None:
    """First parseable definition matching the key, or None."""
    for bundled in definitions:
        try:
            definition = parse_definition(bundled)
        except SeedEntryError as e:
            logger.debug("Skipping unreadable seed definition %s", e.message)
            continue
        if definition.matches(key):
            return definition
    return None
