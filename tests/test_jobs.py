"""Tests for command-line jobs."""

import json
import logging
import sys
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from httpx import AsyncClient

from cardledger.config import Settings
from cardledger.db.database import create_engine, create_session_factory
from cardledger.jobs import seed_checklists
from cardledger.jobs.seed_checklists import run_seed
from cardledger.jobs.sync_cards import read_checkpoint, run_sync, write_checkpoint
from cardledger.models.card import Card
from cardledger.repositories.local import LocalCardRepository

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)

IMPORT_FILE = {
    "manufacturer": "Topps",
    "brand": "Chrome",
    "year": 2023,
    "sport": "Baseball",
    "totalBaseCards": 220,
    "cards": [{"card_number": "200", "player_name": "Gunnar Henderson", "is_rookie": True}],
    "knownVariations": ["Sepia Refractor"],
}


@pytest.fixture
def local_config(tmp_path: Path) -> Settings:
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'desktop.db'}")


class TestCheckpoint:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert read_checkpoint(tmp_path / "checkpoint") is None

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "checkpoint"
        path.write_text("\n")

        assert read_checkpoint(path) is None

    def test_write_then_read(self, tmp_path: Path) -> None:
        path = tmp_path / "checkpoint"

        write_checkpoint(path, T0 + timedelta(microseconds=1500))

        assert read_checkpoint(path) == T0 + timedelta(microseconds=1500)

    def test_naive_checkpoint_is_utc(self, tmp_path: Path) -> None:
        path = tmp_path / "checkpoint"
        path.write_text("2024-03-01T12:00:00")

        assert read_checkpoint(path) == T0


class TestRunSync:
    async def test_local_mode_does_nothing(self, local_config: Settings) -> None:
        assert await run_sync(local_config, None) is None

    async def test_cycle_against_server(
        self,
        tmp_path: Path,
        client: AsyncClient,
        local_repository: LocalCardRepository,
        make_card: Callable[..., Card],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Server changes land in the desktop store and the checkpoint advances."""
        await local_repository.upsert_card(make_card(id=1, updated_at=T0))
        await local_repository.upsert_card(make_card(id=2, updated_at=T0 + timedelta(hours=1)))
        config = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'desktop.db'}",
            sync_server_url="http://100.64.1.5:5000",
        )

        with caplog.at_level(logging.INFO, logger="cardledger.jobs.sync_cards"):
            result = await run_sync(config, T0, client=client)

        assert result is not None
        assert result.pull.pulled == 1
        assert result.checkpoint == T0 + timedelta(hours=1)
        assert "Sync server has 2 cards, last updated 2024-03-01T13:00:00" in caplog.text

        engine = create_engine(config.database_url)
        try:
            desktop = LocalCardRepository(create_session_factory(engine))
            assert [card.id for card in await desktop.list_cards()] == [2]
        finally:
            await engine.dispose()


class TestRunSeed:
    async def test_seeds_bundled_checklists(self, local_config: Settings) -> None:
        seed_result, merges = await run_seed(local_config)

        assert not seed_result.skipped
        assert seed_result.errors == []
        assert len(seed_result.seeded) >= 3
        assert merges == []

    async def test_import_and_export(self, local_config: Settings, tmp_path: Path) -> None:
        import_path = tmp_path / "chrome.json"
        import_path.write_text(json.dumps(IMPORT_FILE))

        _, merges = await run_seed(local_config, imports=[import_path])

        assert len(merges) == 1
        assert merges[0].cards_added == 1
        assert merges[0].checklist.data_source == "enriched"

        export_path = tmp_path / "out.json"
        seed_result, _ = await run_seed(
            local_config, export_id=merges[0].checklist.id, export_path=export_path
        )

        assert seed_result.skipped
        exported = json.loads(export_path.read_text())
        assert "200" in [card["card_number"] for card in exported["cards"]]
        assert "Sepia Refractor" in exported["knownVariations"]


class TestSeedCli:
    def test_export_flags_go_together(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "argv", ["cardledger-seed", "--export-id", "1"])

        with pytest.raises(SystemExit) as exc_info:
            seed_checklists.main()

        assert exc_info.value.code == 2

    def test_missing_export_exits_nonzero(
        self, monkeypatch: pytest.MonkeyPatch, local_config: Settings, tmp_path: Path
    ) -> None:
        """Known failures end the job with exit status 1."""
        monkeypatch.setattr(seed_checklists, "settings", local_config)
        monkeypatch.setattr(
            sys,
            "argv",
            ["cardledger-seed", "--export-id", "999", "--export-path", str(tmp_path / "x.json")],
        )

        with pytest.raises(SystemExit) as exc_info:
            seed_checklists.main()

        assert exc_info.value.code == 1
