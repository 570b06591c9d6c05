"""Errors raised by the bid ledger and its collaborators."""


class AuctionError(Exception):
    """Base class for all ledger errors."""

    def __init__(self, message: str, product_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.product_id = product_id


class ValidationError(AuctionError):
    """Missing or malformed input. Nothing was mutated."""


class InvalidCloseTime(ValidationError):
    """Close time is not a valid instant."""


class AuctionClosed(AuctionError):
    """Bid arrived at or after the auction's close time."""


class BidTooLow(AuctionError):
    """Bid is not strictly higher than the current highest bid."""

    def __init__(self, message: str, product_id: str | None = None, current_highest: float = 0.0):
        super().__init__(message, product_id)
        self.current_highest = current_highest


class AlreadyNotified(AuctionError):
    """The winner of this auction has already been notified."""


class NoWinner(AuctionError):
    """The auction has no accepted bid to notify."""


class StorageError(AuctionError):
    """The storage backend failed; the driver error is chained as __cause__."""
