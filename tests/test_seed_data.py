"""Tests for bundled checklist definitions."""

import json
from pathlib import Path

import pytest

from cardledger.models.checklist import ChecklistCard, ChecklistKey, DataSource, SetChecklist
from cardledger.models.failure import SeedEntryError
from cardledger.services.seed_data import (
    SEED_DATA_DIR,
    BundledDefinition,
    SeedChecklistDefinition,
    find_definition,
    load_bundled_definitions,
    parse_definition,
)

PRIZM = {
    "manufacturer": "Panini",
    "brand": "Prizm",
    "year": 2023,
    "sport": "Football",
    "totalBaseCards": 400,
    "cards": [{"card_number": 1, "player_name": "Patrick Mahomes II", "is_rookie": False}],
    "knownVariations": ["Silver"],
}


def _bundled(name: str, data: object) -> BundledDefinition:
    return BundledDefinition(name=name, content=json.dumps(data))


class TestBundledFiles:
    def test_package_ships_definitions(self) -> None:
        """Every packaged definition parses."""
        definitions = load_bundled_definitions()

        assert len(definitions) >= 3
        parsed = [parse_definition(d) for d in definitions]
        assert all(definition.cards for definition in parsed)

    def test_loaded_sorted_by_name(self) -> None:
        names = [d.name for d in load_bundled_definitions(SEED_DATA_DIR)]

        assert names == sorted(names)

    def test_missing_directory_yields_nothing(self, tmp_path: Path) -> None:
        assert load_bundled_definitions(tmp_path / "absent") == []

    def test_reads_only_json(self, tmp_path: Path) -> None:
        (tmp_path / "a.json").write_text(json.dumps(PRIZM))
        (tmp_path / "notes.txt").write_text("ignore me")

        assert [d.name for d in load_bundled_definitions(tmp_path)] == ["a.json"]


class TestParseDefinition:
    def test_parses_camel_case_keys(self) -> None:
        definition = parse_definition(_bundled("prizm.json", PRIZM))

        assert definition.total_base_cards == 400
        assert definition.known_variations == ["Silver"]
        assert definition.key == ChecklistKey("Panini", "Prizm", 2023, "Football")

    def test_integer_card_numbers_become_strings(self) -> None:
        definition = parse_definition(_bundled("prizm.json", PRIZM))

        assert definition.cards[0].card_number == "1"

    def test_blank_sport_is_absent(self) -> None:
        definition = parse_definition(_bundled("x.json", {**PRIZM, "sport": " "}))

        assert definition.sport is None

    def test_malformed_json_names_the_file(self) -> None:
        with pytest.raises(SeedEntryError) as exc_info:
            parse_definition(BundledDefinition(name="broken.json", content="{not json"))

        assert exc_info.value.definition == "broken.json"
        assert exc_info.value.message.startswith("broken.json:")

    def test_missing_brand_is_rejected(self) -> None:
        data = {key: value for key, value in PRIZM.items() if key != "brand"}

        with pytest.raises(SeedEntryError):
            parse_definition(_bundled("nobrand.json", data))

    def test_checklist_cards_carry_source(self) -> None:
        definition = parse_definition(_bundled("prizm.json", PRIZM))

        cards = definition.checklist_cards(DataSource.SEED)

        assert cards == [
            ChecklistCard(card_number="1", player_name="Patrick Mahomes II", source="seed")
        ]


class TestFindDefinition:
    def test_case_insensitive_match(self) -> None:
        definitions = [_bundled("prizm.json", PRIZM)]

        found = find_definition(ChecklistKey("PANINI", "prizm", 2023, "football"), definitions)

        assert found is not None
        assert found.brand == "Prizm"

    def test_sport_must_match(self) -> None:
        definitions = [_bundled("prizm.json", PRIZM)]

        assert find_definition(ChecklistKey("Panini", "Prizm", 2023), definitions) is None

    def test_skips_unreadable_definitions(self) -> None:
        definitions = [
            BundledDefinition(name="broken.json", content="[]"),
            _bundled("prizm.json", PRIZM),
        ]

        found = find_definition(ChecklistKey("Panini", "Prizm", 2023, "Football"), definitions)

        assert found is not None


class TestExportFormat:
    def test_from_checklist_writes_import_format(self) -> None:
        checklist = SetChecklist(
            key=ChecklistKey("Topps", "Chrome", 2023, "Baseball"),
            cards=[ChecklistCard(card_number="3", player_name="Aaron Judge", source="learned")],
            known_variations=["Refractor"],
            total_base_cards=220,
        )

        data = json.loads(SeedChecklistDefinition.from_checklist(checklist).to_json())

        assert data["totalBaseCards"] == 220
        assert data["knownVariations"] == ["Refractor"]
        assert data["cards"][0]["card_number"] == "3"
        assert "source" not in data["cards"][0]
