"""Bid ledger module."""

from .bids import BidLedger
from .locks import KeyedLock
from .notify import NotificationGate

__all__ = ["BidLedger", "KeyedLock", "NotificationGate"]
