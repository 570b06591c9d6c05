"""Bid ledger: accepts bids and administers auctions."""

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog

from ..errors import AuctionClosed, BidTooLow, InvalidCloseTime, ValidationError
from ..models import (
    AuctionState,
    AuctionStatus,
    Bid,
    HighestBid,
    WinnerNotice,
    ensure_utc,
    parse_instant,
)
from ..storage import AuctionStore
from .locks import KeyedLock
from .notify import NotificationGate

logger = structlog.get_logger()


def _mask_email(email: str) -> str:
    return email[:3] + "..." if len(email) > 3 else "..."


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _require_amount(amount: Any) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
        raise ValidationError("Bid amount must be a number")
    try:
        amount = float(amount)
    except (OverflowError, ValueError, InvalidOperation) as e:
        raise ValidationError("Bid amount must be finite") from e
    if not math.isfinite(amount):
        raise ValidationError("Bid amount must be finite")
    if amount <= 0:
        raise ValidationError("Bid amount must be positive")
    return amount


class BidLedger:
    """Enforces the bidding rules against an ``AuctionStore``.

    Every mutation for a product runs under that product's lock and
    commits through a conditional store write, so concurrent bids behave
    as if they ran one after another. Different products never block each
    other.
    """

    def __init__(self, store: AuctionStore, locks: Optional[KeyedLock] = None):
        self.store = store
        self._locks = locks or KeyedLock()
        self.gate = NotificationGate(store, self._locks)

    async def place_bid(
        self,
        product_id: str,
        bidder_email: str,
        bidder_name: str,
        amount: float,
        now: datetime,
    ) -> AuctionStatus:
        """Place a bid on a product.

        Args:
            product_id: Auction to bid on
            bidder_email: Bidder's email, used for winner notification
            bidder_name: Display name shown as the leader
            amount: Offer, must be strictly above the current highest bid
            now: Submission instant, compared against the close time

        Returns:
            AuctionStatus after the bid was recorded

        Raises:
            ValidationError: malformed input
            AuctionClosed: ``now`` is at or after the close time
            BidTooLow: ``amount`` does not beat the current highest bid
        """
        product_id = _require_text(product_id, "product_id")
        bidder_email = _require_text(bidder_email, "email")
        bidder_name = _require_text(bidder_name, "display_name")
        amount = _require_amount(amount)
        now = ensure_utc(now)

        bid = Bid(
            product_id=product_id,
            bidder_email=bidder_email,
            bidder_name=bidder_name,
            amount=amount,
            submitted_at=now,
        )

        async with self._locks.hold(product_id):
            state = await self.store.ensure_state(product_id, now)
            while True:
                if state.is_closed(now):
                    logger.info("bid_rejected", product_id=product_id, reason="closed", amount=amount)
                    raise AuctionClosed("Auction has ended", product_id)

                current = state.highest_amount if state.highest_amount is not None else 0.0
                if amount <= current:
                    logger.info(
                        "bid_rejected",
                        product_id=product_id,
                        reason="too_low",
                        amount=amount,
                        current=current,
                    )
                    raise BidTooLow(
                        "Bid must be higher than current highest bid",
                        product_id,
                        current_highest=current,
                    )

                updated = await self.store.commit_bid(bid, state)
                if updated is not None:
                    break

                # Another process moved the auction between our read and write.
                logger.info("bid_commit_conflict", product_id=product_id, amount=amount)
                state = await self.store.ensure_state(product_id, now)

        logger.info(
            "bid_accepted",
            product_id=product_id,
            bid_id=bid.bid_id,
            bidder=_mask_email(bidder_email),
            amount=amount,
        )
        return AuctionStatus.from_state(updated, now)

    async def get_status(self, product_id: str, now: datetime) -> AuctionStatus:
        """Get an auction's public status, creating empty state for new products."""
        product_id = _require_text(product_id, "product_id")
        now = ensure_utc(now)
        state = await self.store.ensure_state(product_id, now)
        return AuctionStatus.from_state(state, now)

    async def set_close_time(
        self,
        product_id: str,
        close_time: datetime | str,
        now: datetime,
    ) -> AuctionState:
        """Set or move an auction's close time. Existing bids are untouched."""
        product_id = _require_text(product_id, "product_id")
        try:
            close_time = parse_instant(close_time)
        except (TypeError, ValueError) as e:
            raise InvalidCloseTime("Invalid end_time", product_id) from e
        now = ensure_utc(now)

        async with self._locks.hold(product_id):
            state = await self.store.set_close_time(product_id, close_time, now)

        logger.info("close_time_set", product_id=product_id, close_time=close_time.isoformat())
        return state

    async def reset_auction(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        """Delete an auction's bid history and clear its leader and notification.

        Destructive and irreversible. The close time is kept.
        """
        product_id = _require_text(product_id, "product_id")
        now = ensure_utc(now)

        async with self._locks.hold(product_id):
            state = await self.store.reset(product_id, now)

        logger.warning("auction_reset", product_id=product_id, existed=state is not None)
        return state

    async def get_highest(self, product_id: str) -> HighestBid:
        """Administrative view of the leader. Does not create state."""
        product_id = _require_text(product_id, "product_id")
        state = await self.store.get_state(product_id)
        if state is None:
            return HighestBid(product_id=product_id)
        return HighestBid.from_state(state)

    async def list_bids(self, product_id: str) -> list[Bid]:
        product_id = _require_text(product_id, "product_id")
        return await self.store.list_bids(product_id)

    async def mark_notified(self, product_id: str, now: datetime) -> WinnerNotice:
        """Claim the winner notification for an auction (see NotificationGate)."""
        product_id = _require_text(product_id, "product_id")
        return await self.gate.try_mark_notified(product_id, now)

    async def clear_notified(self, product_id: str, now: datetime) -> bool:
        product_id = _require_text(product_id, "product_id")
        return await self.gate.clear(product_id, ensure_utc(now))
