from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.deps import get_escrow, get_notifier
from farmlink.core.auth import Buyer, require_buyer
from farmlink.database import get_db
from farmlink.schemas.common import OptionalPlace
from farmlink.schemas.request import (
    DeliveryRequestCreate,
    DeliveryRequestCreateResponse,
    DeliveryRequestResponse,
    QuoteAcceptResponse,
    QuoteListResponse,
    QuoteResponse,
)
from farmlink.services import request_service
from farmlink.services.escrow_service import EscrowLedger
from farmlink.services.notification_service import Notifier

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=DeliveryRequestCreateResponse, status_code=201)
async def create_request(
    req: DeliveryRequestCreate,
    db: AsyncSession = Depends(get_db),
    buyer: Buyer = Depends(require_buyer),
    notifier: Notifier = Depends(get_notifier),
):
    request = await request_service.create_request(db, buyer.id, req, notifier=notifier)
    return DeliveryRequestCreateResponse(id=request.id, status=request.status)


@router.get("/{request_id}", response_model=DeliveryRequestResponse)
async def get_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    buyer: Buyer = Depends(require_buyer),
):
    request, quotes_count = await request_service.get_request(db, buyer.id, request_id)
    return _request_to_response(request, quotes_count)


@router.get("/{request_id}/quotes", response_model=QuoteListResponse)
async def list_quotes(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    buyer: Buyer = Depends(require_buyer),
):
    quotes = await request_service.list_quotes(db, buyer.id, request_id)
    return QuoteListResponse(quotes=[_quote_to_response(q) for q in quotes])


@router.post("/{request_id}/quotes/{quote_id}/accept", response_model=QuoteAcceptResponse)
async def accept_quote(
    request_id: str,
    quote_id: str,
    db: AsyncSession = Depends(get_db),
    buyer: Buyer = Depends(require_buyer),
    escrow: EscrowLedger = Depends(get_escrow),
    notifier: Notifier = Depends(get_notifier),
):
    job = await request_service.accept_quote(
        db, buyer.id, request_id, quote_id, escrow=escrow, notifier=notifier
    )
    return QuoteAcceptResponse(job_id=job.id)


def _request_to_response(request, quotes_count: int | None = None) -> DeliveryRequestResponse:
    return DeliveryRequestResponse(
        id=request.id,
        buyer_id=request.buyer_id,
        farmer_id=request.farmer_id,
        produce_type=request.produce_type,
        quantity=float(request.quantity),
        unit=request.unit,
        notes=request.notes,
        pickup=OptionalPlace(**request.pickup),
        dropoff=OptionalPlace(**request.dropoff),
        lot_id=request.lot_id,
        product_bid_id=request.product_bid_id,
        status=request.status,
        chosen_quote_id=request.chosen_quote_id,
        job_id=request.job_id,
        quotes_count=quotes_count,
        created_at=request.created_at,
    )


def _quote_to_response(quote) -> QuoteResponse:
    return QuoteResponse(
        id=quote.id,
        request_id=quote.request_id,
        driver_id=quote.driver_id,
        amount=float(quote.amount),
        currency=quote.currency,
        eta_minutes=quote.eta_minutes,
        note=quote.note,
        status=quote.status,
        created_at=quote.created_at,
    )
