import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.exceptions import (
    BidNotFoundError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    LotNotFoundError,
)
from farmlink.models.delivery import DeliveryRequest
from farmlink.models.lot import ProduceLot, ProductBid
from farmlink.schemas.lot import BidCreateRequest, LotCreateRequest
from farmlink.services import acceptance_service
from farmlink.services.escrow_service import EscrowLedger
from farmlink.services.notification_service import Notifier

logger = logging.getLogger(__name__)

ACTIVE_BID_STATUSES = ("pending", "accepted")


async def create_lot(
    db: AsyncSession, farmer_id: str, req: LotCreateRequest, *, notifier: Notifier
) -> ProduceLot:
    lot = ProduceLot(
        farmer_id=farmer_id,
        produce_type=req.produce_type,
        description=req.description or "",
        quantity=Decimal(str(req.quantity)),
        unit=req.unit,
        reserve_price=Decimal(str(req.reserve_price)),
        pickup_name=req.pickup.name or "",
        pickup_address=req.pickup.address or "",
        pickup_lat=req.pickup.lat,
        pickup_lng=req.pickup.lng,
        status="open",
    )
    db.add(lot)
    await db.commit()
    await db.refresh(lot)

    notifier.publish("product:new", {"lotId": lot.id})
    return lot


async def get_lot(db: AsyncSession, lot_id: str) -> ProduceLot:
    """Get a lot by ID or raise 404."""
    result = await db.execute(select(ProduceLot).where(ProduceLot.id == lot_id))
    lot = result.scalar_one_or_none()
    if not lot:
        raise LotNotFoundError(lot_id)
    return lot


async def list_open_lots(db: AsyncSession) -> list[ProduceLot]:
    result = await db.execute(
        select(ProduceLot)
        .where(ProduceLot.status == "open")
        .order_by(ProduceLot.created_at.desc())
    )
    return list(result.scalars().all())


async def place_bid(
    db: AsyncSession, buyer_id: str, lot_id: str, req: BidCreateRequest, *, notifier: Notifier
) -> ProductBid:
    """Place a pending bid on an open lot. One active bid per buyer per lot."""
    lot = await get_lot(db, lot_id)
    if lot.status != "open":
        raise ConflictError("Lot not open")

    existing = await db.execute(
        select(ProductBid.id).where(
            ProductBid.lot_id == lot.id,
            ProductBid.buyer_id == buyer_id,
            ProductBid.status.in_(ACTIVE_BID_STATUSES),
        )
    )
    if existing.first() is not None:
        raise ConflictError("You already have an active bid on this lot")

    last_seq = (
        await db.execute(select(func.max(ProductBid.seq)).where(ProductBid.lot_id == lot.id))
    ).scalar()

    bid = ProductBid(
        lot_id=lot.id,
        buyer_id=buyer_id,
        amount=Decimal(str(req.amount)),
        quantity=Decimal(str(req.quantity)),
        units=req.units,
        note=req.note,
        status="pending",
        seq=(last_seq or 0) + 1,
    )
    db.add(bid)
    await db.commit()
    await db.refresh(bid)

    notifier.publish("product:bid", {"lotId": lot.id, "bidId": bid.id})
    return bid


async def list_bids(db: AsyncSession, farmer_id: str, lot_id: str) -> list[ProductBid]:
    """Pending/accepted bids on the farmer's lot, best offer first."""
    lot = await get_lot(db, lot_id)
    if str(lot.farmer_id) != str(farmer_id):
        raise ForbiddenError()
    result = await db.execute(
        select(ProductBid)
        .where(ProductBid.lot_id == lot.id, ProductBid.status.in_(ACTIVE_BID_STATUSES))
        .order_by(ProductBid.amount.desc(), ProductBid.seq.asc())
    )
    return list(result.scalars().all())


async def withdraw_bid(db: AsyncSession, buyer_id: str, bid_id: str) -> ProductBid:
    result = await db.execute(
        select(ProductBid).where(ProductBid.id == bid_id, ProductBid.buyer_id == buyer_id)
    )
    bid = result.scalar_one_or_none()
    if not bid:
        raise BidNotFoundError(bid_id)
    if bid.status != "pending":
        raise InvalidStateError("Bid", bid.status, "pending")
    bid.status = "withdrawn"
    await db.commit()
    await db.refresh(bid)
    return bid


async def accept_bid(
    db: AsyncSession,
    farmer_id: str,
    lot_id: str,
    bid_id: str,
    *,
    escrow: EscrowLedger,
    notifier: Notifier,
) -> DeliveryRequest:
    """Sell the lot to one bid and seed the transport request for it.

    The lot is consumed whole by the accepted bid; the remaining pending
    bids are rejected in the same transaction.
    """

    async def _spawn(session: AsyncSession, lot: ProduceLot, bid: ProductBid) -> DeliveryRequest:
        lot.awarded_bid_id = bid.id
        await escrow.authorize(
            session,
            target_id=lot.id,
            payer_id=bid.buyer_id,
            amount=bid.amount,
            intent_type="product",
        )
        request = DeliveryRequest(
            buyer_id=bid.buyer_id,
            farmer_id=lot.farmer_id,
            produce_type=lot.produce_type,
            quantity=lot.quantity,
            unit=lot.unit,
            pickup_name=lot.pickup_name,
            pickup_address=lot.pickup_address,
            pickup_lat=lot.pickup_lat,
            pickup_lng=lot.pickup_lng,
            dropoff_name="",
            dropoff_address="",
            dropoff_lat=0,
            dropoff_lng=0,
            notes=f"From lot {lot.id}",
            lot_id=lot.id,
            product_bid_id=bid.id,
            pickup_owner_id=lot.farmer_id,
            status="open",
        )
        session.add(request)
        await session.flush()
        return request

    result = await acceptance_service.award(
        db,
        acceptance_service.LOT_ARENA,
        owner_id=farmer_id,
        target_id=lot_id,
        offer_id=bid_id,
        spawn=_spawn,
    )
    request = result.spawned
    await db.refresh(request)

    notifier.publish("sale:accepted", {"lotId": lot_id, "buyerId": result.offer.buyer_id})
    notifier.publish("request:new", {"requestId": request.id})
    return request
