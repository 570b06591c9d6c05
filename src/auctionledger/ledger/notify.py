"""Winner notification gate."""

from datetime import datetime
from typing import Optional

import structlog

from ..errors import AlreadyNotified, NoWinner
from ..models import WinnerNotice, ensure_utc
from ..storage import AuctionStore
from .locks import KeyedLock

logger = structlog.get_logger()


class NotificationGate:
    """Allows at most one winner notification per auction outcome.

    The gate is marked *before* the email goes out. If delivery then fails
    the auction stays marked; a resend needs an explicit ``clear``.
    """

    def __init__(self, store: AuctionStore, locks: Optional[KeyedLock] = None):
        self.store = store
        self._locks = locks or KeyedLock()

    async def try_mark_notified(self, product_id: str, now: datetime) -> WinnerNotice:
        """Claim the single notification slot for the current winner.

        Args:
            product_id: Auction to notify
            now: Current instant, recorded as ``notified_at``

        Returns:
            WinnerNotice describing who to email

        Raises:
            NoWinner: the auction has no accepted bid
            AlreadyNotified: the winner was already notified
        """
        now = ensure_utc(now)
        async with self._locks.hold(product_id):
            state = await self.store.mark_notified(product_id, now)
            if state is None:
                current = await self.store.get_state(product_id)
                if current is None or not current.has_winner:
                    logger.info("notify_no_winner", product_id=product_id)
                    raise NoWinner("No winner for this auction", product_id)
                logger.info(
                    "notify_already_sent",
                    product_id=product_id,
                    notified_at=current.notified_at.isoformat() if current.notified_at else None,
                )
                raise AlreadyNotified("Winner has already been notified", product_id)

        logger.info(
            "winner_marked_notified",
            product_id=product_id,
            amount=state.highest_amount,
            winner=state.leader_name,
        )
        return WinnerNotice(
            product_id=product_id,
            winner_name=state.leader_name or "Bidder",
            winner_email=state.leader_email,
            amount=state.highest_amount,
            notified_at=state.notified_at,
        )

    async def clear(self, product_id: str, now: datetime) -> bool:
        """Reopen the gate after a failed delivery. Returns False for unknown products."""
        async with self._locks.hold(product_id):
            state = await self.store.clear_notified(product_id, ensure_utc(now))
        if state is None:
            return False
        logger.warning("winner_notification_cleared", product_id=product_id)
        return True
