"""Lot market: listing, bidding, bid ordering and the sale that seeds delivery."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from farmlink.core.async_tasks import drain_background_tasks
from farmlink.core.exceptions import ConflictError, ForbiddenError, LotNotFoundError
from farmlink.models.delivery import DeliveryRequest
from farmlink.models.lot import ProductBid
from farmlink.models.payment import PaymentIntent
from farmlink.services import lot_service


def _id() -> str:
    return str(uuid.uuid4())


async def test_create_lot_emits_product_new(db, make_lot, bus):
    lot = await make_lot(_id())
    await drain_background_tasks()

    assert lot.status == "open"
    assert lot.version == 1
    assert ("product:new", {"lotId": lot.id}) in bus.events


async def test_list_open_lots_excludes_awarded(db, make_lot, make_bid, escrow, notifier):
    farmer = _id()
    sold = await make_lot(farmer)
    still_open = await make_lot(farmer, produce_type="Cassava")
    bid = await make_bid(_id(), sold.id)
    await lot_service.accept_bid(db, farmer, sold.id, bid.id, escrow=escrow, notifier=notifier)

    lots = await lot_service.list_open_lots(db)
    assert [lot.id for lot in lots] == [still_open.id]


async def test_get_missing_lot(db):
    with pytest.raises(LotNotFoundError):
        await lot_service.get_lot(db, "missing")


async def test_duplicate_active_bid_is_conflict(db, make_lot, make_bid):
    lot = await make_lot(_id())
    buyer = _id()
    await make_bid(buyer, lot.id)
    with pytest.raises(ConflictError):
        await make_bid(buyer, lot.id, amount=120_000)


async def test_withdrawn_bid_allows_rebidding(db, make_lot, make_bid):
    lot = await make_lot(_id())
    buyer = _id()
    bid = await make_bid(buyer, lot.id)
    await lot_service.withdraw_bid(db, buyer, bid.id)
    again = await make_bid(buyer, lot.id, amount=150_000)
    assert again.status == "pending"


async def test_bids_ordered_by_amount_then_submission(db, make_lot, make_bid):
    farmer = _id()
    lot = await make_lot(farmer)
    first_low = await make_bid(_id(), lot.id, amount=50_000)
    high = await make_bid(_id(), lot.id, amount=90_000)
    second_low = await make_bid(_id(), lot.id, amount=50_000)

    bids = await lot_service.list_bids(db, farmer, lot.id)
    assert [b.id for b in bids] == [high.id, first_low.id, second_low.id]


async def test_only_owner_lists_bids(db, make_lot):
    lot = await make_lot(_id())
    with pytest.raises(ForbiddenError):
        await lot_service.list_bids(db, _id(), lot.id)


async def test_accept_bid_awards_lot_and_seeds_request(db, make_lot, make_bid, escrow, notifier, bus):
    farmer, winner, loser = _id(), _id(), _id()
    lot = await make_lot(farmer)
    win_bid = await make_bid(winner, lot.id, amount=200_000)
    lose_bid = await make_bid(loser, lot.id, amount=150_000)

    request = await lot_service.accept_bid(
        db, farmer, lot.id, win_bid.id, escrow=escrow, notifier=notifier
    )
    await drain_background_tasks()

    lot = await lot_service.get_lot(db, lot.id)
    assert lot.status == "awarded"
    assert lot.awarded_bid_id == win_bid.id
    assert lot.version == 2

    statuses = dict((await db.execute(select(ProductBid.id, ProductBid.status))).all())
    assert statuses == {win_bid.id: "accepted", lose_bid.id: "rejected"}

    assert request.status == "open"
    assert request.buyer_id == winner
    assert request.product_bid_id == win_bid.id
    assert request.lot_id == lot.id
    assert request.pickup == lot.pickup

    intents = (await db.execute(select(PaymentIntent))).scalars().all()
    assert len(intents) == 1
    assert intents[0].type == "product"
    assert intents[0].status == "authorized"
    assert intents[0].job_id == lot.id
    assert intents[0].amount == Decimal("200000")

    assert "sale:accepted" in bus.names()
    assert ("request:new", {"requestId": request.id}) in bus.events


async def test_bid_on_awarded_lot_is_conflict(db, make_lot, make_bid, escrow, notifier):
    farmer = _id()
    lot = await make_lot(farmer)
    bid = await make_bid(_id(), lot.id)
    await lot_service.accept_bid(db, farmer, lot.id, bid.id, escrow=escrow, notifier=notifier)

    with pytest.raises(ConflictError) as exc:
        await make_bid(_id(), lot.id)
    assert exc.value.status_code == 400


async def test_second_accept_is_conflict_and_changes_nothing(db, make_lot, make_bid, escrow, notifier):
    farmer = _id()
    lot = await make_lot(farmer)
    first = await make_bid(_id(), lot.id)
    second = await make_bid(_id(), lot.id)
    await lot_service.accept_bid(db, farmer, lot.id, first.id, escrow=escrow, notifier=notifier)

    with pytest.raises(ConflictError):
        await lot_service.accept_bid(db, farmer, lot.id, second.id, escrow=escrow, notifier=notifier)

    requests = (await db.execute(select(DeliveryRequest))).scalars().all()
    intents = (await db.execute(select(PaymentIntent))).scalars().all()
    assert len(requests) == 1
    assert len(intents) == 1


async def test_non_owner_cannot_accept(db, make_lot, make_bid, escrow, notifier):
    lot = await make_lot(_id())
    bid = await make_bid(_id(), lot.id)
    with pytest.raises(ForbiddenError):
        await lot_service.accept_bid(db, _id(), lot.id, bid.id, escrow=escrow, notifier=notifier)
