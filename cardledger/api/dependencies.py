"""Shared FastAPI dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardledger.bootstrap import bundled_definitions
from cardledger.config import settings
from cardledger.db.database import get_session_factory
from cardledger.repositories.local import LocalCardRepository
from cardledger.services.checklist_cache import ChecklistCache
from cardledger.services.seed_data import BundledDefinition

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


@lru_cache(maxsize=1)
def _definitions() -> tuple[BundledDefinition, ...]:
    return tuple(bundled_definitions(settings))


@lru_cache(maxsize=8)
def _cache_for(session_factory: async_sessionmaker[AsyncSession]) -> ChecklistCache:
    return ChecklistCache(
        session_factory,
        definitions=list(_definitions()),
        learning_enabled=settings.enable_checklist_learning,
    )


def get_card_repository(session_factory: SessionFactory) -> LocalCardRepository:
    """Dependency that provides the server's card repository."""
    return LocalCardRepository(session_factory)


def get_checklist_cache(session_factory: SessionFactory) -> ChecklistCache:
    """
    Dependency that provides the checklist cache over the server's store.

    One cache per session factory, shared by every request, so merges
    arriving together queue on the same lock instead of racing.
    """
    return _cache_for(session_factory)


CardRepositoryDep = Annotated[LocalCardRepository, Depends(get_card_repository)]
ChecklistCacheDep = Annotated[ChecklistCache, Depends(get_checklist_cache)]
