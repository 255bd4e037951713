"""
Startup wiring.

Decides whether this process owns the card store or talks to a sync server,
and prepares local storage before anything reads from it: schema evolution
first, then seeding of bundled checklists.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import Enum

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from cardledger.config import Settings
from cardledger.db.database import create_engine, create_session_factory
from cardledger.db.schema import evolve_schema
from cardledger.repositories.base import CardRepository
from cardledger.repositories.local import LocalCardRepository
from cardledger.repositories.remote import RemoteCardRepository
from cardledger.services.checklist_cache import ChecklistCache, SeedResult
from cardledger.services.seed_data import BundledDefinition, load_bundled_definitions

logger = logging.getLogger(__name__)

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1"})


class DataAccessMode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


def detect_mode(settings: Settings) -> DataAccessMode:
    """
    Local when no sync server is configured or it points at this machine.

    Anything else is treated as a remote sync server.
    """
    url = settings.sync_server_url.strip()
    if not url:
        return DataAccessMode.LOCAL
    if "://" not in url:
        url = f"http://{url}"
    host = httpx.URL(url).host.lower()
    if host in LOCAL_HOSTS:
        return DataAccessMode.LOCAL
    return DataAccessMode.REMOTE


def bundled_definitions(settings: Settings) -> list[BundledDefinition]:
    """Seed definitions from the configured directory, or the packaged ones."""
    return load_bundled_definitions(settings.seed_data_dir)


async def initialize_storage(
    engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    definitions: list[BundledDefinition] | None = None,
    log: logging.Logger | None = None,
) -> SeedResult:
    """
    Evolve the schema, then seed checklists if the store has none.

    Raises:
        SchemaFailure: If schema evolution fails. Seeding is not attempted.
    """
    log = log or logger
    report = await evolve_schema(engine, log)
    if report.changed:
        log.info(
            "Schema updated: %d tables, %d columns, %d indexes",
            len(report.created_tables),
            len(report.added_columns),
            len(report.created_indexes),
        )

    cache = ChecklistCache(session_factory, log=log, definitions=definitions)
    result = await cache.seed_if_empty()
    for error in result.errors:
        log.warning("Seed error: %s", error.message)
    return result


@asynccontextmanager
async def open_local_repository(
    settings: Settings,
    log: logging.Logger | None = None,
) -> AsyncIterator[LocalCardRepository]:
    """
    Open the card store named by `database_url`, ready for use.

    Storage is initialized before the repository is handed out and the
    engine is disposed on exit.
    """
    log = log or logger
    engine = create_engine(settings.database_url, echo=settings.debug)
    try:
        session_factory = create_session_factory(engine)
        await initialize_storage(engine, session_factory, bundled_definitions(settings), log)
        yield LocalCardRepository(session_factory)
    finally:
        await engine.dispose()


@asynccontextmanager
async def open_remote_repository(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    log: logging.Logger | None = None,
) -> AsyncIterator[RemoteCardRepository]:
    """
    Open a repository over the configured sync server.

    A supplied client is used as is and left open; otherwise one is created
    from the settings and closed on exit.
    """
    log = log or logger
    if client is not None:
        yield RemoteCardRepository(client, log)
        return

    async with httpx.AsyncClient(
        base_url=settings.sync_server_url,
        timeout=settings.request_timeout,
    ) as owned_client:
        yield RemoteCardRepository(owned_client, log)


@asynccontextmanager
async def open_repository(
    settings: Settings,
    log: logging.Logger | None = None,
) -> AsyncIterator[CardRepository]:
    """
    Open the one card repository this process should use.

    The repository's resource (database engine or HTTP client) is closed
    on exit. Remote mode never touches local storage.
    """
    log = log or logger
    mode = detect_mode(settings)
    log.info("Data access mode: %s", mode.value)

    if mode is DataAccessMode.REMOTE:
        async with open_remote_repository(settings, log=log) as remote:
            yield remote
    else:
        async with open_local_repository(settings, log) as local:
            yield local
