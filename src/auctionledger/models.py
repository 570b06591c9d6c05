"""Pydantic models for the auction ledger collections."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


# ============================================================
# Time helpers
# ============================================================

def utcnow() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: datetime | str) -> datetime:
    """Parse a datetime or ISO-8601 string into an aware UTC datetime.

    Raises ValueError (or TypeError for other types) when the value is not
    a valid instant.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise TypeError(f"expected datetime or ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if not text:
        raise ValueError("empty timestamp")
    return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))


def new_bid_id() -> str:
    return f"bid_{uuid.uuid4().hex[:12]}"


# ============================================================
# Bid Models
# ============================================================

class Bid(BaseModel):
    """Accepted bid. Immutable once written."""
    bid_id: str = Field(default_factory=new_bid_id)
    product_id: str
    bidder_email: str
    bidder_name: str
    amount: float
    submitted_at: datetime

    model_config = {"frozen": True}


# ============================================================
# Auction State Models
# ============================================================

class AuctionState(BaseModel):
    """Mutable per-product auction record.

    ``highest_amount`` is None exactly when ``leader_name`` and
    ``leader_email`` are None (no bids yet).
    """
    product_id: str
    close_time: Optional[datetime] = None
    highest_amount: Optional[float] = None
    leader_name: Optional[str] = None
    leader_email: Optional[str] = None
    last_updated_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None

    @property
    def has_winner(self) -> bool:
        return self.highest_amount is not None and bool(self.leader_email)

    def is_closed(self, now: datetime) -> bool:
        return self.close_time is not None and ensure_utc(now) >= ensure_utc(self.close_time)


class AuctionStatus(AuctionState):
    """Auction state plus the live ``auction_ended`` derivation."""
    auction_ended: bool = False

    @classmethod
    def from_state(cls, state: AuctionState, now: datetime) -> "AuctionStatus":
        return cls(**state.model_dump(), auction_ended=state.is_closed(now))


class HighestBid(BaseModel):
    """Administrative view of an auction's leader."""
    product_id: str
    highest_amount: Optional[float] = None
    leader_name: Optional[str] = None
    leader_email: Optional[str] = None
    close_time: Optional[datetime] = None
    notified_at: Optional[datetime] = None

    @classmethod
    def from_state(cls, state: AuctionState) -> "HighestBid":
        return cls(
            product_id=state.product_id,
            highest_amount=state.highest_amount,
            leader_name=state.leader_name,
            leader_email=state.leader_email,
            close_time=state.close_time,
            notified_at=state.notified_at,
        )


# ============================================================
# Notification Models
# ============================================================

class WinnerNotice(BaseModel):
    """Granted permission to send exactly one winner email."""
    product_id: str
    winner_name: str
    winner_email: str
    amount: float
    notified_at: datetime
