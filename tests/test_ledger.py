import math
from datetime import timedelta
from decimal import Decimal

import pytest

from auctionledger.errors import (
    AlreadyNotified,
    AuctionClosed,
    BidTooLow,
    InvalidCloseTime,
    ValidationError,
)

from .conftest import T0, at


@pytest.mark.asyncio
async def test_walkthrough_p1(ledger, store) -> None:
    status = await ledger.place_bid("P1", "a@x.com", "A", 10, at(0))
    assert status.highest_amount == 10
    assert status.leader_name == "A"
    assert status.auction_ended is False

    with pytest.raises(BidTooLow):
        await ledger.place_bid("P1", "b@x.com", "B", 5, at(1))
    assert (await ledger.get_status("P1", at(1))).highest_amount == 10

    status = await ledger.place_bid("P1", "b@x.com", "B", 15, at(2))
    assert status.highest_amount == 15
    assert status.leader_name == "B"

    await ledger.set_close_time("P1", at(2) + timedelta(hours=1), now=at(2))

    with pytest.raises(AuctionClosed):
        await ledger.place_bid("P1", "a@x.com", "A", 20, at(2) + timedelta(hours=2))
    status = await ledger.get_status("P1", at(2) + timedelta(hours=2))
    assert status.highest_amount == 15
    assert status.auction_ended is True

    notice = await ledger.mark_notified("P1", at(2) + timedelta(hours=2))
    assert notice.winner_name == "B"
    assert notice.winner_email == "b@x.com"
    assert notice.amount == 15

    with pytest.raises(AlreadyNotified):
        await ledger.mark_notified("P1", at(2) + timedelta(hours=3))

    assert len(await store.list_bids("P1")) == 2


@pytest.mark.asyncio
async def test_increasing_bids_leave_last_bidder_leading(ledger) -> None:
    for i, amount in enumerate([1, 2.5, 7, 7.01, 100]):
        await ledger.place_bid("P2", f"b{i}@x.com", f"bidder-{i}", amount, at(i))

    status = await ledger.get_status("P2", at(10))
    assert status.highest_amount == 100
    assert status.leader_name == "bidder-4"
    assert status.leader_email == "b4@x.com"


@pytest.mark.asyncio
async def test_low_bid_does_not_mutate_state_or_history(ledger, store) -> None:
    await ledger.place_bid("P1", "a@x.com", "A", 10, at(0))
    before = await store.get_state("P1")

    for amount in (10, 9.99, 0.5):
        with pytest.raises(BidTooLow) as excinfo:
            await ledger.place_bid("P1", "b@x.com", "B", amount, at(5))
        assert excinfo.value.current_highest == 10

    assert await store.get_state("P1") == before
    assert [b.amount for b in await store.list_bids("P1")] == [10]


@pytest.mark.asyncio
async def test_bid_at_exact_close_time_is_rejected(ledger, store) -> None:
    await ledger.set_close_time("P1", at(30), now=at(0))
    await ledger.place_bid("P1", "a@x.com", "A", 10, at(29))
    before = await store.get_state("P1")

    with pytest.raises(AuctionClosed):
        await ledger.place_bid("P1", "b@x.com", "B", 50, at(30))

    assert await store.get_state("P1") == before
    assert len(await store.list_bids("P1")) == 1


@pytest.mark.asyncio
async def test_closed_check_wins_over_low_amount(ledger) -> None:
    await ledger.place_bid("P1", "a@x.com", "A", 10, at(0))
    await ledger.set_close_time("P1", at(1), now=at(0))
    with pytest.raises(AuctionClosed):
        await ledger.place_bid("P1", "b@x.com", "B", 1, at(2))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "product_id, email, name, amount",
    [
        ("", "a@x.com", "A", 10),
        ("P1", "  ", "A", 10),
        ("P1", "a@x.com", "", 10),
        ("P1", "a@x.com", "A", 0),
        ("P1", "a@x.com", "A", -3),
        ("P1", "a@x.com", "A", math.inf),
        ("P1", "a@x.com", "A", math.nan),
        ("P1", "a@x.com", "A", "10"),
        ("P1", "a@x.com", "A", True),
        ("P1", "a@x.com", "A", None),
        ("P1", "a@x.com", "A", 10**400),
        ("P1", "a@x.com", "A", Decimal("sNaN")),
        ("P1", "a@x.com", "A", Decimal("Infinity")),
    ],
)
async def test_invalid_bids_are_rejected_without_state(ledger, store, product_id, email, name, amount) -> None:
    with pytest.raises(ValidationError):
        await ledger.place_bid(product_id, email, name, amount, at(0))
    assert await store.get_state("P1") is None


@pytest.mark.asyncio
async def test_status_lazily_creates_empty_state(ledger, store) -> None:
    assert await store.get_state("NEW") is None

    status = await ledger.get_status("NEW", at(0))
    assert status.product_id == "NEW"
    assert status.highest_amount is None
    assert status.leader_name is None
    assert status.leader_email is None
    assert status.close_time is None
    assert status.auction_ended is False
    assert await store.get_state("NEW") is not None


@pytest.mark.asyncio
async def test_close_time_accepts_iso_strings(ledger) -> None:
    state = await ledger.set_close_time("P1", "2026-03-01T13:00:00Z", now=at(0))
    assert state.close_time == at(60)
    assert state.last_updated_at == at(0)

    state = await ledger.set_close_time("P1", "2026-03-01T15:00:00+02:00", now=at(1))
    assert state.close_time == at(60)


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["", "tomorrow", "2026-13-45", 12345, None])
async def test_invalid_close_time(ledger, value) -> None:
    with pytest.raises(InvalidCloseTime):
        await ledger.set_close_time("P1", value, now=at(0))


@pytest.mark.asyncio
async def test_moving_close_time_keeps_bids(ledger) -> None:
    await ledger.place_bid("P1", "a@x.com", "A", 10, at(0))
    await ledger.set_close_time("P1", at(5), now=at(1))
    await ledger.set_close_time("P1", at(120), now=at(2))

    status = await ledger.place_bid("P1", "b@x.com", "B", 11, at(60))
    assert status.highest_amount == 11
    assert status.close_time == at(120)


@pytest.mark.asyncio
async def test_reset_clears_bids_and_keeps_close_time(ledger, store) -> None:
    await ledger.set_close_time("P1", at(60), now=at(0))
    await ledger.place_bid("P1", "a@x.com", "A", 10, at(1))
    await ledger.place_bid("P1", "b@x.com", "B", 20, at(2))
    await ledger.place_bid("OTHER", "c@x.com", "C", 5, at(2))

    await ledger.reset_auction("P1", at(3))

    status = await ledger.get_status("P1", at(4))
    assert status.highest_amount is None
    assert status.leader_name is None
    assert status.leader_email is None
    assert status.close_time == at(60)
    assert status.last_updated_at == at(3)
    assert await ledger.list_bids("P1") == []
    assert len(await ledger.list_bids("OTHER")) == 1

    status = await ledger.place_bid("P1", "c@x.com", "C", 1, at(5))
    assert status.highest_amount == 1


@pytest.mark.asyncio
async def test_reset_unknown_product_is_a_noop(ledger, store) -> None:
    assert await ledger.reset_auction("GHOST", at(0)) is None
    assert await store.get_state("GHOST") is None


@pytest.mark.asyncio
async def test_get_highest_does_not_create_state(ledger, store) -> None:
    highest = await ledger.get_highest("GHOST")
    assert highest.product_id == "GHOST"
    assert highest.highest_amount is None
    assert await store.get_state("GHOST") is None


@pytest.mark.asyncio
async def test_get_highest_reports_leader_and_notification(ledger) -> None:
    await ledger.set_close_time("P1", at(10), now=at(0))
    await ledger.place_bid("P1", "a@x.com", "A", 42.5, at(1))
    await ledger.mark_notified("P1", at(11))

    highest = await ledger.get_highest("P1")
    assert highest.highest_amount == 42.5
    assert highest.leader_name == "A"
    assert highest.leader_email == "a@x.com"
    assert highest.close_time == at(10)
    assert highest.notified_at == at(11)


@pytest.mark.asyncio
async def test_naive_now_is_treated_as_utc(ledger) -> None:
    await ledger.set_close_time("P1", at(10), now=at(0))
    naive_after_close = at(11).replace(tzinfo=None)
    with pytest.raises(AuctionClosed):
        await ledger.place_bid("P1", "a@x.com", "A", 1, naive_after_close)


@pytest.mark.asyncio
async def test_bid_history_is_recorded_in_order(ledger) -> None:
    await ledger.place_bid(" P1 ", " a@x.com ", " A ", 1, at(0))
    await ledger.place_bid("P1", "b@x.com", "B", 2, at(1))

    history = await ledger.list_bids("P1")
    assert [(b.bidder_name, b.amount) for b in history] == [("A", 1.0), ("B", 2.0)]
    assert history[0].bidder_email == "a@x.com"
    assert history[0].submitted_at == T0
    assert history[0].bid_id != history[1].bid_id


@pytest.mark.asyncio
async def test_admin_operations_take_the_caller_clock(ledger) -> None:
    with pytest.raises(TypeError):
        await ledger.reset_auction("P1")
    with pytest.raises(TypeError):
        await ledger.clear_notified("P1")
    with pytest.raises(TypeError):
        await ledger.set_close_time("P1", at(10))

    state = await ledger.set_close_time("P1", at(10), at(3))
    assert state.last_updated_at == at(3)
    await ledger.place_bid("P1", "a@x.com", "A", 5, at(4))
    state = await ledger.reset_auction("P1", at(7))
    assert state.last_updated_at == at(7)
