from cardledger.repositories.base import CardRepository, ChangeFeed, RejectedRecord
from cardledger.repositories.local import LocalCardRepository
from cardledger.repositories.remote import RemoteCardRepository

__all__ = [
    "CardRepository",
    "ChangeFeed",
    "LocalCardRepository",
    "RejectedRecord",
    "RemoteCardRepository",
]
