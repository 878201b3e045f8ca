import logging
import secrets
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.config import settings
from farmlink.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    QuoteNotFoundError,
    RequestNotFoundError,
)
from farmlink.core.geo import within_radius
from farmlink.models.delivery import DeliveryRequest, Quote
from farmlink.models.job import DriverJob
from farmlink.schemas.request import DeliveryRequestCreate, QuoteCreateRequest
from farmlink.services import acceptance_service
from farmlink.services.escrow_service import EscrowLedger
from farmlink.services.notification_service import Notifier

logger = logging.getLogger(__name__)

# Quotes that block the same driver from quoting the request again
ACTIVE_QUOTE_STATUSES = ("pending", "accepted", "active")
# Quotes the buyer still sees on their request
VISIBLE_QUOTE_STATUSES = ("pending", "accepted")


def generate_checkpoint_code() -> str:
    """Uniform 4-digit code in [checkpoint_code_min, checkpoint_code_max]."""
    low, high = settings.checkpoint_code_min, settings.checkpoint_code_max
    return str(low + secrets.randbelow(high - low + 1))


def generate_checkpoint_codes() -> tuple[str, str]:
    """A (farmer_code, buyer_code) pair that never collide."""
    farmer_code = generate_checkpoint_code()
    buyer_code = generate_checkpoint_code()
    while buyer_code == farmer_code:
        buyer_code = generate_checkpoint_code()
    return farmer_code, buyer_code


async def create_request(
    db: AsyncSession, buyer_id: str, req: DeliveryRequestCreate, *, notifier: Notifier
) -> DeliveryRequest:
    request = DeliveryRequest(
        buyer_id=buyer_id,
        farmer_id=req.farmer_id,
        produce_type=req.produce_type,
        quantity=Decimal(str(req.quantity)),
        unit=req.unit,
        notes=req.notes or "",
        pickup_name=req.pickup.name or "",
        pickup_address=req.pickup.address or "",
        pickup_lat=req.pickup.lat,
        pickup_lng=req.pickup.lng,
        dropoff_name=req.dropoff.name or "",
        dropoff_address=req.dropoff.address or "",
        dropoff_lat=req.dropoff.lat,
        dropoff_lng=req.dropoff.lng,
        status="open",
    )
    db.add(request)
    await db.commit()
    await db.refresh(request)

    notifier.publish("request:new", {"requestId": request.id})
    return request


async def _get_request(db: AsyncSession, request_id: str) -> DeliveryRequest:
    result = await db.execute(select(DeliveryRequest).where(DeliveryRequest.id == request_id))
    request = result.scalar_one_or_none()
    if not request:
        raise RequestNotFoundError(request_id)
    return request


async def _get_owned_request(db: AsyncSession, buyer_id: str, request_id: str) -> DeliveryRequest:
    request = await _get_request(db, request_id)
    if str(request.buyer_id) != str(buyer_id):
        raise ForbiddenError()
    return request


async def get_request(db: AsyncSession, buyer_id: str, request_id: str) -> tuple[DeliveryRequest, int]:
    """The buyer's request plus the number of quotes still in play."""
    request = await _get_owned_request(db, buyer_id, request_id)
    count = (
        await db.execute(
            select(func.count(Quote.id)).where(
                Quote.request_id == request.id,
                Quote.status.in_(VISIBLE_QUOTE_STATUSES),
            )
        )
    ).scalar() or 0
    return request, count


async def list_quotes(db: AsyncSession, buyer_id: str, request_id: str) -> list[Quote]:
    """Quotes on the buyer's request, cheapest first, then by submission order."""
    request = await _get_owned_request(db, buyer_id, request_id)
    result = await db.execute(
        select(Quote)
        .where(Quote.request_id == request.id, Quote.status.in_(VISIBLE_QUOTE_STATUSES))
        .order_by(Quote.amount.asc(), Quote.seq.asc())
    )
    return list(result.scalars().all())


async def open_requests(
    db: AsyncSession,
    driver_id: str,
    *,
    near: dict | None = None,
    radius_km: float | None = None,
    include_quoted: bool = False,
) -> list[DeliveryRequest]:
    """Open requests a driver may quote on, newest first.

    Requests without a pickup coordinate are never filtered out by distance.
    """
    result = await db.execute(
        select(DeliveryRequest)
        .where(DeliveryRequest.status == "open")
        .order_by(DeliveryRequest.created_at.desc())
    )
    rows = list(result.scalars().all())

    if not include_quoted:
        mine = await db.execute(
            select(Quote.request_id).where(
                Quote.driver_id == driver_id,
                Quote.status.in_(ACTIVE_QUOTE_STATUSES),
            )
        )
        quoted = {str(rid) for rid in mine.scalars().all()}
        rows = [r for r in rows if str(r.id) not in quoted]

    if near is not None:
        radius = settings.default_search_radius_km if radius_km is None else radius_km
        rows = [
            r for r in rows
            if r.pickup_lat is None or r.pickup_lng is None
            or within_radius(near, {"lat": r.pickup_lat, "lng": r.pickup_lng}, radius)
        ]
    return rows


async def submit_quote(
    db: AsyncSession,
    driver_id: str,
    request_id: str,
    req: QuoteCreateRequest,
    *,
    notifier: Notifier,
) -> Quote:
    request = await _get_request(db, request_id)
    if request.status != "open":
        raise ConflictError("Request not open for quotes")

    existing = await db.execute(
        select(Quote.id).where(
            Quote.driver_id == driver_id,
            Quote.request_id == request.id,
            Quote.status.in_(ACTIVE_QUOTE_STATUSES),
        )
    )
    if existing.first() is not None:
        raise ConflictError("You already have an active quote for this request")

    last_seq = (
        await db.execute(select(func.max(Quote.seq)).where(Quote.request_id == request.id))
    ).scalar()

    quote = Quote(
        request_id=request.id,
        driver_id=driver_id,
        amount=Decimal(str(req.amount)),
        currency=settings.escrow_currency,
        eta_minutes=req.eta_minutes,
        note=req.note,
        status="pending",
        seq=(last_seq or 0) + 1,
    )
    db.add(quote)
    await db.commit()
    await db.refresh(quote)

    notifier.publish(
        "request:quote",
        {"requestId": request.id, "quoteId": quote.id, "driverId": driver_id},
    )
    return quote


async def get_my_quote(db: AsyncSession, driver_id: str, request_id: str) -> Quote:
    result = await db.execute(
        select(Quote)
        .where(Quote.driver_id == driver_id, Quote.request_id == request_id)
        .order_by(Quote.seq.desc())
    )
    quote = result.scalars().first()
    if not quote:
        raise NotFoundError("Quote not found")
    return quote


async def list_my_quotes(db: AsyncSession, driver_id: str, status: str = "pending") -> list[Quote]:
    result = await db.execute(
        select(Quote)
        .where(Quote.driver_id == driver_id, Quote.status == status.lower())
        .order_by(Quote.created_at.desc())
    )
    return list(result.scalars().all())


async def withdraw_quote(db: AsyncSession, driver_id: str, quote_id: str) -> Quote:
    result = await db.execute(
        select(Quote).where(Quote.id == quote_id, Quote.driver_id == driver_id)
    )
    quote = result.scalar_one_or_none()
    if not quote:
        raise QuoteNotFoundError(quote_id)
    if quote.status != "pending":
        raise ConflictError("Only pending quotes can be withdrawn")
    quote.status = "withdrawn"
    await db.commit()
    await db.refresh(quote)
    return quote


async def accept_quote(
    db: AsyncSession,
    buyer_id: str,
    request_id: str,
    quote_id: str,
    *,
    escrow: EscrowLedger,
    notifier: Notifier,
) -> DriverJob:
    """Award the request to one quote and open the driver job with its escrow."""

    async def _spawn(session: AsyncSession, request: DeliveryRequest, quote: Quote) -> DriverJob:
        farmer_code, buyer_code = generate_checkpoint_codes()
        job = DriverJob(
            buyer_id=request.buyer_id,
            farmer_id=request.farmer_id,
            product_lot_id=request.lot_id,
            request_id=request.id,
            accepted_quote_id=quote.id,
            accepted_by=quote.driver_id,
            accepted_at=datetime.now(timezone.utc),
            commodity=request.produce_type,
            quantity=request.quantity,
            unit=request.unit,
            payment_amount=quote.amount,
            instructions=request.notes or "",
            pickup_name=request.pickup_name,
            pickup_address=request.pickup_address,
            pickup_lat=request.pickup_lat,
            pickup_lng=request.pickup_lng,
            dropoff_name=request.dropoff_name,
            dropoff_address=request.dropoff_address,
            dropoff_lat=request.dropoff_lat,
            dropoff_lng=request.dropoff_lng,
            farmer_code=farmer_code,
            buyer_code=buyer_code,
            status="awaiting_driver_confirm",
        )
        session.add(job)
        await session.flush()

        request.chosen_quote_id = quote.id
        request.job_id = job.id
        await escrow.authorize(
            session,
            target_id=job.id,
            payer_id=request.buyer_id,
            amount=quote.amount,
            intent_type="transport",
            driver_id=quote.driver_id,
        )
        return job

    result = await acceptance_service.award(
        db,
        acceptance_service.REQUEST_ARENA,
        owner_id=buyer_id,
        target_id=request_id,
        offer_id=quote_id,
        spawn=_spawn,
    )
    job = result.spawned
    await db.refresh(job)

    notifier.publish(
        "quote:accepted",
        {"requestId": request_id, "driverId": result.offer.driver_id, "jobId": job.id},
    )
    return job


async def get_quote_for_driver(db: AsyncSession, driver_id: str, quote_id: str) -> Quote:
    result = await db.execute(select(Quote).where(Quote.id == quote_id))
    quote = result.scalar_one_or_none()
    if not quote or str(quote.driver_id) != str(driver_id):
        raise QuoteNotFoundError(quote_id)
    if quote.status != "accepted":
        raise InvalidStateError("Quote", quote.status, "accepted")
    return quote
