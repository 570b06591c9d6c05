"""MongoDB auction store.

Conditional writes use ``find_one_and_update`` filters so that a stale
reader can never overwrite a newer highest bid. When transactions are
enabled (replica set required) the bid append and the state update commit
together; otherwise a failed append is compensated by restoring the
previous leader.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

import structlog
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..errors import StorageError
from ..models import AuctionState, Bid
from .base import AuctionStore

logger = structlog.get_logger()


# ============================================================
# Collection Names
# ============================================================

STATES_COLLECTION = "auction_states"
BIDS_COLLECTION = "auction_bids"

NO_ID = {"_id": 0}


def _open_filter(product_id: str, now: datetime) -> dict[str, Any]:
    """Match the product's state only while the auction is open at ``now``."""
    return {
        "product_id": product_id,
        "$or": [{"close_time": None}, {"close_time": {"$gt": now}}],
    }


class MongoAuctionStore(AuctionStore):
    """Auction states and bids in two MongoDB collections."""

    name = "mongo"

    def __init__(
        self,
        uri: str,
        database: str,
        use_transactions: bool = True,
        client: Optional[AsyncIOMotorClient] = None,
    ):
        self._uri = uri
        self._database_name = database
        self._use_transactions = use_transactions
        self._client = client
        self._db: Optional[AsyncIOMotorDatabase] = None

    # ============================================================
    # Lifecycle
    # ============================================================

    async def open(self) -> None:
        if self._db is not None:
            return
        if self._client is None:
            self._client = AsyncIOMotorClient(self._uri, tz_aware=True)
        self._db = self._client[self._database_name]
        async with self._translate_errors("setup_indexes"):
            await self.states.create_index([("product_id", ASCENDING)], unique=True)
            await self.bids.create_index([("bid_id", ASCENDING)], unique=True)
            await self.bids.create_index([("product_id", ASCENDING), ("submitted_at", ASCENDING)])
        logger.info(
            "mongodb_connected",
            database=self._database_name,
            transactions=self._use_transactions,
        )

    async def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("mongodb_disconnected")

    @property
    def states(self) -> AsyncIOMotorCollection:
        if self._db is None:
            raise StorageError("MongoDB store is not open")
        return self._db[STATES_COLLECTION]

    @property
    def bids(self) -> AsyncIOMotorCollection:
        if self._db is None:
            raise StorageError("MongoDB store is not open")
        return self._db[BIDS_COLLECTION]

    @asynccontextmanager
    async def _translate_errors(self, operation: str, product_id: Optional[str] = None):
        try:
            yield
        except PyMongoError as e:
            logger.error("mongodb_error", operation=operation, product_id=product_id, error=str(e))
            raise StorageError(f"Storage failure during {operation}", product_id) from e

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
        if not self._use_transactions:
            yield None
            return
        async with await self._client.start_session() as session:
            async with session.start_transaction():
                yield session

    # ============================================================
    # Auction State
    # ============================================================

    async def get_state(self, product_id: str) -> Optional[AuctionState]:
        async with self._translate_errors("get_state", product_id):
            doc = await self.states.find_one({"product_id": product_id}, NO_ID)
        return AuctionState(**doc) if doc else None

    async def ensure_state(self, product_id: str, now: datetime) -> AuctionState:
        empty = AuctionState(product_id=product_id, last_updated_at=now).model_dump()
        empty.pop("product_id")
        async with self._translate_errors("ensure_state", product_id):
            try:
                doc = await self.states.find_one_and_update(
                    {"product_id": product_id},
                    {"$setOnInsert": empty},
                    projection=NO_ID,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                # Lost a concurrent upsert race; the document exists now.
                doc = await self.states.find_one({"product_id": product_id}, NO_ID)
        return AuctionState(**doc)

    async def set_close_time(
        self,
        product_id: str,
        close_time: datetime,
        now: datetime,
    ) -> AuctionState:
        async with self._translate_errors("set_close_time", product_id):
            doc = await self.states.find_one_and_update(
                {"product_id": product_id},
                {
                    "$set": {"close_time": close_time, "last_updated_at": now},
                    "$setOnInsert": {
                        "highest_amount": None,
                        "leader_name": None,
                        "leader_email": None,
                        "notified_at": None,
                    },
                },
                projection=NO_ID,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return AuctionState(**doc)

    async def mark_notified(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        async with self._translate_errors("mark_notified", product_id):
            doc = await self.states.find_one_and_update(
                {
                    "product_id": product_id,
                    "highest_amount": {"$ne": None},
                    "leader_email": {"$nin": [None, ""]},
                    "notified_at": None,
                },
                {"$set": {"notified_at": now}},
                projection=NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        return AuctionState(**doc) if doc else None

    async def clear_notified(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        async with self._translate_errors("clear_notified", product_id):
            doc = await self.states.find_one_and_update(
                {"product_id": product_id},
                {"$set": {"notified_at": None, "last_updated_at": now}},
                projection=NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        return AuctionState(**doc) if doc else None

    # ============================================================
    # Bids
    # ============================================================

    async def commit_bid(self, bid: Bid, expected: AuctionState) -> Optional[AuctionState]:
        query = _open_filter(bid.product_id, bid.submitted_at)
        query["highest_amount"] = expected.highest_amount
        update = {"$set": {
            "highest_amount": bid.amount,
            "leader_name": bid.bidder_name,
            "leader_email": bid.bidder_email,
            "last_updated_at": bid.submitted_at,
        }}

        async with self._translate_errors("commit_bid", bid.product_id):
            async with self._transaction() as session:
                doc = await self.states.find_one_and_update(
                    query,
                    update,
                    projection=NO_ID,
                    return_document=ReturnDocument.AFTER,
                    session=session,
                )
                if doc is None:
                    return None
                if session is not None:
                    await self.bids.insert_one(bid.model_dump(), session=session)
                else:
                    await self._insert_or_restore(bid, expected)
        return AuctionState(**doc)

    async def _insert_or_restore(self, bid: Bid, expected: AuctionState) -> None:
        """Append the bid; on failure put the previous leader back."""
        try:
            await self.bids.insert_one(bid.model_dump())
        except PyMongoError:
            # Stored datetimes are truncated to milliseconds, so the
            # timestamp cannot be part of the match.
            result = await self.states.update_one(
                {
                    "product_id": bid.product_id,
                    "highest_amount": bid.amount,
                    "leader_email": bid.bidder_email,
                },
                {"$set": {
                    "highest_amount": expected.highest_amount,
                    "leader_name": expected.leader_name,
                    "leader_email": expected.leader_email,
                    "last_updated_at": expected.last_updated_at,
                }},
            )
            if result.matched_count == 0:
                logger.error("bid_commit_restore_missed", product_id=bid.product_id, bid_id=bid.bid_id)
            else:
                logger.warning("bid_commit_restored", product_id=bid.product_id, bid_id=bid.bid_id)
            raise

    async def list_bids(self, product_id: str) -> list[Bid]:
        bids = []
        async with self._translate_errors("list_bids", product_id):
            cursor = self.bids.find({"product_id": product_id}, NO_ID).sort("submitted_at", ASCENDING)
            async for doc in cursor:
                bids.append(Bid(**doc))
        return bids

    async def reset(self, product_id: str, now: datetime) -> Optional[AuctionState]:
        async with self._translate_errors("reset", product_id):
            async with self._transaction() as session:
                result = await self.bids.delete_many({"product_id": product_id}, session=session)
                doc = await self.states.find_one_and_update(
                    {"product_id": product_id},
                    {"$set": {
                        "highest_amount": None,
                        "leader_name": None,
                        "leader_email": None,
                        "notified_at": None,
                        "last_updated_at": now,
                    }},
                    projection=NO_ID,
                    return_document=ReturnDocument.AFTER,
                    session=session,
                )
        logger.info("mongodb_bids_deleted", product_id=product_id, count=result.deleted_count)
        return AuctionState(**doc) if doc else None
