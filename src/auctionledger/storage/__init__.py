"""Storage backends for auction states and bid records."""

from ..config import Settings
from .base import AuctionStore
from .memory import MemoryAuctionStore
from .mongo import MongoAuctionStore


def create_store(settings: Settings) -> AuctionStore:
    """Build the store selected by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        return MemoryAuctionStore()
    return MongoAuctionStore(
        uri=settings.mongodb_uri,
        database=settings.mongodb_database,
        use_transactions=settings.mongodb_transactions,
    )


__all__ = ["AuctionStore", "MemoryAuctionStore", "MongoAuctionStore", "create_store"]
