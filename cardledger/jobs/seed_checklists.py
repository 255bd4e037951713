"""
Job to prepare the local store and load checklists.

Runs schema evolution and seeds bundled checklists into an empty store.
Optionally imports or exports checklist files.
"""

import argparse
import asyncio
import logging
from pathlib import Path

from cardledger.bootstrap import bundled_definitions, initialize_storage
from cardledger.config import Settings, settings
from cardledger.db.database import create_engine, create_session_factory
from cardledger.models.failure import KnownError
from cardledger.services.checklist_cache import ChecklistCache, MergeResult, SeedResult

logger = logging.getLogger(__name__)


async def run_seed(
    config: Settings,
    imports: list[Path] | None = None,
    export_id: int | None = None,
    export_path: Path | None = None,
) -> tuple[SeedResult, list[MergeResult]]:
    """
    Initialize storage, then import and export checklist files.

    Returns the seed result and one merge result per imported file.
    """
    engine = create_engine(config.database_url, echo=config.debug)
    try:
        session_factory = create_session_factory(engine)
        definitions = bundled_definitions(config)
        seed_result = await initialize_storage(engine, session_factory, definitions)

        cache = ChecklistCache(session_factory, definitions=definitions)
        merges: list[MergeResult] = []
        for path in imports or []:
            merge = await cache.import_checklist(path)
            logger.info(
                "Imported %s: +%d cards, +%d variations",
                path,
                merge.cards_added,
                merge.variations_added,
            )
            merges.append(merge)

        if export_id is not None and export_path is not None:
            await cache.export_checklist(export_id, export_path)

        return seed_result, merges
    finally:
        await engine.dispose()


def main() -> None:
    """CLI entry point for seeding and checklist import/export."""
    parser = argparse.ArgumentParser(description="Seed and manage set checklists")
    parser.add_argument(
        "--import",
        dest="imports",
        nargs="+",
        type=Path,
        default=[],
        help="Checklist JSON files to merge as enriched data",
    )
    parser.add_argument(
        "--export-id",
        type=int,
        default=None,
        help="Id of a checklist to export",
    )
    parser.add_argument(
        "--export-path",
        type=Path,
        default=None,
        help="Destination file for --export-id",
    )
    args = parser.parse_args()

    if (args.export_id is None) != (args.export_path is None):
        parser.error("--export-id and --export-path must be given together")

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        seed_result, _merges = asyncio.run(
            run_seed(settings, args.imports, args.export_id, args.export_path)
        )
    except KnownError as e:
        logger.error("Checklist job failed: %s", e.message)
        raise SystemExit(1) from e

    if seed_result.skipped:
        logger.info("Checklists already present, seeding skipped")
    else:
        logger.info("Seeded %d checklists", len(seed_result.seeded))
    for error in seed_result.errors:
        logger.warning("Seed error: %s", error.message)


if __name__ == "__main__":
    main()
