"""Shared static token checks for the HTTP surface.

Public routes present ``X-Auction-Public-Key``; admin routes present
``X-Auction-Admin-Secret``. The ledger itself never sees these headers.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request
import structlog

logger = structlog.get_logger()

PUBLIC_KEY_HEADER = "X-Auction-Public-Key"
ADMIN_SECRET_HEADER = "X-Auction-Admin-Secret"


def tokens_match(presented: Optional[str], expected: str) -> bool:
    """Constant-time comparison. An unset expected token never matches."""
    if not presented or not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


async def require_public_key(
    request: Request,
    x_auction_public_key: Optional[str] = Header(None),
) -> None:
    """Dependency: reject requests without the shared public key."""
    settings = request.app.state.settings
    if not tokens_match(x_auction_public_key, settings.auction_public_key):
        logger.warning("auth_public_key_rejected", path=request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_admin(
    request: Request,
    x_auction_admin_secret: Optional[str] = Header(None),
) -> None:
    """Dependency: reject requests without the admin secret."""
    settings = request.app.state.settings
    if not tokens_match(x_auction_admin_secret, settings.auction_admin_secret):
        logger.warning("auth_admin_rejected", path=request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")
