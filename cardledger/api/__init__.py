from cardledger.api.cards import router as cards_router
from cardledger.api.checklists import router as checklists_router
from cardledger.api.health import router as health_router
from cardledger.api.sync import router as sync_router

__all__ = [
    "cards_router",
    "checklists_router",
    "health_router",
    "sync_router",
]
