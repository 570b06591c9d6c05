"""Abstract storage interface for the bid ledger."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..models import AuctionState, Bid


class AuctionStore(ABC):
    """Storage backend holding auction states and the bid record log.

    Implementations must make ``commit_bid``, ``mark_notified`` and
    ``reset`` atomic per product: either every write they describe lands,
    or none does. Driver failures are raised as ``StorageError``.
    """

    name: str = "abstract"

    # ============================================================
    # Lifecycle
    # ============================================================

    async def open(self) -> None:
        """Acquire connections and prepare indexes. Called once at startup."""

    async def close(self) -> None:
        """Release connections. Called once at shutdown."""

    # ============================================================
    # Auction State
    # ============================================================

    @abstractmethod
    async def get_state(self, product_id: str) -> Optional[AuctionState]:
        """Get the auction state, or None if the product was never seen."""
        ...

    @abstractmethod
    async def ensure_state(self, product_id: str, now: datetime) -> AuctionState:
        """Get the auction state, creating an empty one if absent."""
        ...

    @abstractmethod
    async def set_close_time(
        self,
        product_id: str,
        close_time: datetime,
        now: datetime,
    ) -> AuctionState:
        """Upsert the close time and return the updated state."""
        ...

    @abstractmethod
    async def mark_notified(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        """Set ``notified_at`` if the auction has a winner and was not notified.

        Returns the updated state, or None when the condition did not hold.
        """
        ...

    @abstractmethod
    async def clear_notified(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        """Unset ``notified_at`` so a resend can be attempted."""
        ...

    # ============================================================
    # Bids
    # ============================================================

    @abstractmethod
    async def commit_bid(self, bid: Bid, expected: AuctionState) -> Optional[AuctionState]:
        """Append a bid and make its bidder the leader, conditionally.

        The write only happens if the stored highest amount still equals
        ``expected.highest_amount`` and the auction is open at
        ``bid.submitted_at``. Returns the updated state, or None if the
        condition failed (nothing written).
        """
        ...

    @abstractmethod
    async def list_bids(self, product_id: str) -> list[Bid]:
        """List bids for a product, oldest first."""
        ...

    @abstractmethod
    async def reset(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        """Delete all bids and clear leader and notification fields.

        Keeps ``close_time``. Returns None if the product has no state.
        """
        ...
