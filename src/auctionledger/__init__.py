"""Auction Ledger - live auction bids with a once-only winner notification.

Example usage:
    from auctionledger import BidLedger, MemoryAuctionStore

    ledger = BidLedger(MemoryAuctionStore())
    status = await ledger.place_bid("P1", "a@x.com", "A", 10.0, now)
"""

from .errors import (
    AlreadyNotified,
    AuctionClosed,
    AuctionError,
    BidTooLow,
    InvalidCloseTime,
    NoWinner,
    StorageError,
    ValidationError,
)
from .ledger import BidLedger, KeyedLock, NotificationGate
from .models import AuctionState, AuctionStatus, Bid, HighestBid, WinnerNotice
from .storage import AuctionStore, MemoryAuctionStore, MongoAuctionStore, create_store

__version__ = "0.1.0"
__all__ = [
    "AlreadyNotified",
    "AuctionClosed",
    "AuctionError",
    "AuctionState",
    "AuctionStatus",
    "AuctionStore",
    "Bid",
    "BidLedger",
    "BidTooLow",
    "HighestBid",
    "InvalidCloseTime",
    "KeyedLock",
    "MemoryAuctionStore",
    "MongoAuctionStore",
    "NoWinner",
    "NotificationGate",
    "StorageError",
    "ValidationError",
    "WinnerNotice",
    "create_store",
]
