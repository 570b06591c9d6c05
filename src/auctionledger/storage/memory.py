"""In-process auction store.

Each operation runs without awaiting between its read and its write, so on
a single event loop every call is atomic with respect to other tasks.
Suitable for tests and single-process deployments; data is lost on exit.
"""

from collections import defaultdict
from datetime import datetime
from typing import Optional

import structlog

from ..models import AuctionState, Bid
from .base import AuctionStore

logger = structlog.get_logger()


class MemoryAuctionStore(AuctionStore):
    """Auction states and bids kept in dictionaries."""

    name = "memory"

    def __init__(self):
        self._states: dict[str, AuctionState] = {}
        self._bids: dict[str, list[Bid]] = defaultdict(list)

    async def open(self) -> None:
        logger.info("memory_store_opened")

    async def close(self) -> None:
        logger.info("memory_store_closed", products=len(self._states))

    def _put(self, state: AuctionState) -> AuctionState:
        self._states[state.product_id] = state
        return state.model_copy()

    async def get_state(self, product_id: str) -> Optional[AuctionState]:
        state = self._states.get(product_id)
        return state.model_copy() if state else None

    async def ensure_state(self, product_id: str, now: datetime) -> AuctionState:
        state = self._states.get(product_id)
        if state is None:
            return self._put(AuctionState(product_id=product_id, last_updated_at=now))
        return state.model_copy()

    async def set_close_time(
        self,
        product_id: str,
        close_time: datetime,
        now: datetime,
    ) -> AuctionState:
        state = self._states.get(product_id) or AuctionState(product_id=product_id)
        return self._put(state.model_copy(update={
            "close_time": close_time,
            "last_updated_at": now,
        }))

    async def mark_notified(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        state = self._states.get(product_id)
        if state is None or not state.has_winner or state.notified_at is not None:
            return None
        return self._put(state.model_copy(update={"notified_at": now}))

    async def clear_notified(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        state = self._states.get(product_id)
        if state is None:
            return None
        return self._put(state.model_copy(update={
            "notified_at": None,
            "last_updated_at": now,
        }))

    async def commit_bid(self, bid: Bid, expected: AuctionState) -> Optional[AuctionState]:
        state = self._states.get(bid.product_id)
        if state is None:
            return None
        if state.highest_amount != expected.highest_amount or state.is_closed(bid.submitted_at):
            return None
        self._bids[bid.product_id].append(bid)
        return self._put(state.model_copy(update={
            "highest_amount": bid.amount,
            "leader_name": bid.bidder_name,
            "leader_email": bid.bidder_email,
            "last_updated_at": bid.submitted_at,
        }))

    async def list_bids(self, product_id: str) -> list[Bid]:
        return list(self._bids.get(product_id, []))

    async def reset(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        self._bids.pop(product_id, None)
        state = self._states.get(product_id)
        if state is None:
            return None
        return self._put(state.model_copy(update={
            "highest_amount": None,
            "leader_name": None,
            "leader_email": None,
            "notified_at": None,
            "last_updated_at": now,
        }))
