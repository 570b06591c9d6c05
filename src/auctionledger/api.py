"""Auction ledger HTTP API.

Thin FastAPI surface over ``BidLedger``: parses requests, checks the shared
tokens and maps ledger errors to status codes. All bidding rules live in
the ledger.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictFloat, StrictInt
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from .auth import require_admin, require_public_key
from .config import Settings, get_settings
from .errors import (
    AlreadyNotified,
    AuctionClosed,
    AuctionError,
    BidTooLow,
    NoWinner,
    StorageError,
    ValidationError,
)
from .ledger import BidLedger
from .mail import MailDeliveryError, SmtpMailer, WinnerMailer, render_winner_email
from .models import AuctionStatus, utcnow
from .storage import AuctionStore, create_store

load_dotenv()
logger = structlog.get_logger()


# ============================================================
# Request Models
# ============================================================

class RegisterRequest(BaseModel):
    product_id: str
    email: str


class BidRequest(BaseModel):
    product_id: str
    email: str
    display_name: str
    amount: Union[StrictInt, StrictFloat]


class SetEndRequest(BaseModel):
    product_id: str
    end_time: str


class ProductRequest(BaseModel):
    product_id: str


class WinnerEmailRequest(BaseModel):
    product_id: str
    product_title: Optional[str] = None
    product_image_url: Optional[str] = None
    checkout_url: Optional[str] = None
    currency: Optional[str] = None


# ============================================================
# Helpers
# ============================================================

ERROR_STATUS = {
    ValidationError: 400,
    AuctionClosed: 400,
    BidTooLow: 400,
    NoWinner: 400,
    AlreadyNotified: 409,
    StorageError: 503,
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _status_body(status: AuctionStatus) -> Dict[str, Any]:
    return {
        "productId": status.product_id,
        "endTime": _iso(status.close_time),
        "highestBidAmount": status.highest_amount,
        "highestBidderName": status.leader_name,
        "auctionEnded": status.auction_ended,
    }


def get_ledger(request: Request) -> BidLedger:
    return request.app.state.ledger


def get_mailer(request: Request) -> WinnerMailer:
    return request.app.state.mailer


def get_now(request: Request) -> datetime:
    return request.app.state.clock()


# ============================================================
# Public Endpoints
# ============================================================

public = APIRouter(prefix="/auction", dependencies=[Depends(require_public_key)])


@public.get("/status")
async def auction_status(
    product_id: str = Query(""),
    ledger: BidLedger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    """Public auction status; unseen products start out empty."""
    if not product_id:
        return JSONResponse(status_code=400, content={"message": "product_id required"})
    status = await ledger.get_status(product_id, now)
    return _status_body(status)


@public.post("/register")
async def register_email(request: RegisterRequest):
    """Acknowledge a bidder's interest. Nothing is persisted."""
    if not request.product_id or not request.email:
        return JSONResponse(
            status_code=400,
            content={"message": "product_id and email are required"},
        )
    logger.info("bidder_registered", product_id=request.product_id)
    return {"ok": True}


@public.post("/bid")
async def place_bid(
    request: BidRequest,
    ledger: BidLedger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    """Submit a bid."""
    status = await ledger.place_bid(
        product_id=request.product_id,
        bidder_email=request.email,
        bidder_name=request.display_name,
        amount=request.amount,
        now=now,
    )
    return _status_body(status)


# ============================================================
# Admin Endpoints
# ============================================================

admin = APIRouter(prefix="/auction/admin", dependencies=[Depends(require_admin)])


@admin.post("/set-end")
async def set_end_time(
    request: SetEndRequest,
    ledger: BidLedger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    """Set or move the auction's close time."""
    if not request.product_id or not request.end_time:
        return JSONResponse(
            status_code=400,
            content={"message": "product_id and end_time required"},
        )
    state = await ledger.set_close_time(request.product_id, request.end_time, now)
    return {"productId": state.product_id, "endTime": _iso(state.close_time)}


@admin.post("/reset")
async def reset_auction(
    request: ProductRequest,
    ledger: BidLedger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    """Delete all bids for a product. Irreversible."""
    await ledger.reset_auction(request.product_id, now)
    return {"ok": True}


@admin.get("/highest")
async def get_highest(
    product_id: str = Query(""),
    ledger: BidLedger = Depends(get_ledger),
):
    """Current leader including the bidder's email."""
    if not product_id:
        return JSONResponse(status_code=400, content={"message": "product_id required"})
    highest = await ledger.get_highest(product_id)
    return {
        "productId": highest.product_id,
        "highestBidAmount": highest.highest_amount,
        "highestBidderName": highest.leader_name,
        "highestBidderEmail": highest.leader_email,
        "endTime": _iso(highest.close_time),
        "winnerNotifiedAt": _iso(highest.notified_at),
    }


@admin.post("/send-winner-email")
async def send_winner_email(
    request: WinnerEmailRequest,
    ledger: BidLedger = Depends(get_ledger),
    mailer: WinnerMailer = Depends(get_mailer),
    now: datetime = Depends(get_now),
):
    """Notify the winner once.

    The auction is marked notified before delivery. If delivery fails the
    mark stays; call ``/clear-notified`` before retrying.
    """
    notice = await ledger.mark_notified(request.product_id, now)

    subject, html_body = render_winner_email(
        notice,
        product_title=request.product_title,
        product_image_url=request.product_image_url,
        checkout_url=request.checkout_url,
        currency=request.currency,
    )
    try:
        await mailer.send(notice.winner_email, subject, html_body)
    except MailDeliveryError as e:
        logger.error("winner_email_failed", product_id=notice.product_id, error=str(e))
        return JSONResponse(
            status_code=502,
            content={
                "message": "Winner marked notified but email delivery failed; clear the notification to resend",
                "winnerNotifiedAt": _iso(notice.notified_at),
            },
        )

    logger.info("winner_email_sent", product_id=notice.product_id, amount=notice.amount)
    return {"ok": True, "winnerNotifiedAt": _iso(notice.notified_at)}


@admin.post("/clear-notified")
async def clear_notified(
    request: ProductRequest,
    ledger: BidLedger = Depends(get_ledger),
    now: datetime = Depends(get_now),
):
    """Reopen the notification gate so the winner email can be resent."""
    cleared = await ledger.clear_notified(request.product_id, now)
    if not cleared:
        return JSONResponse(status_code=404, content={"message": "Auction not found"})
    return {"ok": True}


# ============================================================
# App Factory
# ============================================================

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[AuctionStore] = None,
    mailer: Optional[WinnerMailer] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    """Build the API with an explicit store, opened at startup and closed at shutdown."""
    settings = settings or get_settings()
    store = store or create_store(settings)

    app = FastAPI(
        title="Auction Ledger",
        description="Live auction bids, close times and winner notification",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.store = store
    app.state.ledger = BidLedger(store)
    app.state.mailer = mailer or SmtpMailer.from_settings(settings)
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup():
        await store.open()
        logger.info("auction_api_started", storage=store.name)

    @app.on_event("shutdown")
    async def shutdown():
        await store.close()
        logger.info("auction_api_stopped")

    @app.exception_handler(AuctionError)
    async def auction_error_handler(request: Request, exc: AuctionError):
        status_code = next(
            (code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)),
            500,
        )
        return JSONResponse(status_code=status_code, content={"message": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def payload_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"message": "Invalid payload"})

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.error("unhandled_error", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"message": "Server error"})

    @app.get("/health")
    async def health():
        return {"status": "operational", "storage": store.name}

    app.include_router(public)
    app.include_router(admin)
    return app


app = create_app()
