"""
Job to run one sync cycle against the configured sync server.

Pulls remote changes into the local store, then pushes local changes made
since the checkpoint. The checkpoint can be kept in a file so repeated runs
are incremental.
"""

import argparse
import asyncio
import logging
from datetime import datetime
from pathlib import Path

import httpx

from cardledger.bootstrap import (
    DataAccessMode,
    detect_mode,
    open_local_repository,
    open_remote_repository,
)
from cardledger.config import Settings, settings
from cardledger.models.card import as_utc
from cardledger.models.failure import KnownError
from cardledger.services.sync import SyncCoordinator, SyncCycleResult

logger = logging.getLogger(__name__)


def read_checkpoint(path: Path) -> datetime | None:
    """Checkpoint stored in a file, or None if the file is missing or empty."""
    if not path.exists():
        return None
    content = path.read_text(encoding="utf-8").strip()
    return as_utc(datetime.fromisoformat(content)) if content else None


def write_checkpoint(path: Path, checkpoint: datetime) -> None:
    path.write_text(as_utc(checkpoint).isoformat() + "\n", encoding="utf-8")


async def run_sync(
    config: Settings,
    since: datetime | None,
    client: httpx.AsyncClient | None = None,
    cancel: asyncio.Event | None = None,
) -> SyncCycleResult | None:
    """
    Run one sync cycle.

    Args:
        config: Settings naming the local store and the sync server
        since: Checkpoint; None syncs everything
        client: HTTP client for the server; one is created if omitted
        cancel: Set to stop before the next item

    Returns:
        The cycle result, or None when no remote server is configured
    """
    if detect_mode(config) is DataAccessMode.LOCAL:
        logger.info("No remote sync server configured, nothing to sync")
        return None

    async with open_local_repository(config) as local:
        async with open_remote_repository(config, client) as remote:
            status = await remote.sync_status()
            logger.info(
                "Sync server has %d cards, last updated %s",
                status.card_count,
                status.last_updated.isoformat(),
            )
            return await SyncCoordinator(remote, local).run_cycle(since, cancel)


def main() -> None:
    """CLI entry point for running a sync cycle."""
    parser = argparse.ArgumentParser(description="Sync cards with the configured sync server")
    parser.add_argument(
        "--since",
        type=datetime.fromisoformat,
        default=None,
        help="ISO timestamp to sync from (default: checkpoint file, else everything)",
    )
    parser.add_argument(
        "--checkpoint-file",
        type=Path,
        default=None,
        help="File holding the last checkpoint; updated after a successful cycle",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    since = args.since
    if since is None and args.checkpoint_file is not None:
        since = read_checkpoint(args.checkpoint_file)

    try:
        result = asyncio.run(run_sync(settings, since))
    except KnownError as e:
        logger.error("Sync failed: %s", e.message)
        raise SystemExit(1) from e

    if result is None:
        return

    logger.info(
        "Pulled %d (%d errors), pushed %d synced / %d failed",
        result.pull.pulled,
        len(result.pull.errors),
        result.push.synced,
        result.push.failed,
    )
    for error in result.pull.errors + result.push.errors:
        logger.warning(error)

    if args.checkpoint_file is not None and result.checkpoint is not None:
        write_checkpoint(args.checkpoint_file, result.checkpoint)


if __name__ == "__main__":
    main()
