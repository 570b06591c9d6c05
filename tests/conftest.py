import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from auctionledger.ledger import BidLedger
from auctionledger.storage import MemoryAuctionStore

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


class YieldingStore(MemoryAuctionStore):
    """Memory store that hands control back to the loop around every call,
    so concurrent tasks interleave between reads and writes."""

    async def ensure_state(self, product_id, now):
        await asyncio.sleep(0)
        state = await super().ensure_state(product_id, now)
        await asyncio.sleep(0)
        return state

    async def commit_bid(self, bid, expected):
        await asyncio.sleep(0)
        return await super().commit_bid(bid, expected)

    async def mark_notified(self, product_id, now):
        await asyncio.sleep(0)
        return await super().mark_notified(product_id, now)


@pytest.fixture
def store() -> MemoryAuctionStore:
    return MemoryAuctionStore()


@pytest.fixture
def ledger(store) -> BidLedger:
    return BidLedger(store)


@pytest.fixture
def yielding_store() -> YieldingStore:
    return YieldingStore()
