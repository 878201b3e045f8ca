from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.deps import get_escrow, get_notifier
from farmlink.core.auth import Buyer, Farmer, get_current_principal, require_buyer, require_farmer
from farmlink.database import get_db
from farmlink.schemas.common import Place, SuccessResponse
from farmlink.schemas.lot import (
    BidAcceptResponse,
    BidCreateRequest,
    BidCreateResponse,
    BidListResponse,
    BidResponse,
    LotCreateRequest,
    LotCreateResponse,
    LotListResponse,
    LotResponse,
)
from farmlink.services import lot_service
from farmlink.services.escrow_service import EscrowLedger
from farmlink.services.notification_service import Notifier

router = APIRouter(prefix="/lots", tags=["lots"])


@router.post("", response_model=LotCreateResponse, status_code=201)
async def create_lot(
    req: LotCreateRequest,
    db: AsyncSession = Depends(get_db),
    farmer: Farmer = Depends(require_farmer),
    notifier: Notifier = Depends(get_notifier),
):
    lot = await lot_service.create_lot(db, farmer.id, req, notifier=notifier)
    return LotCreateResponse(id=lot.id, status=lot.status)


@router.get("", response_model=LotListResponse, dependencies=[Depends(get_current_principal)])
async def list_open_lots(db: AsyncSession = Depends(get_db)):
    lots = await lot_service.list_open_lots(db)
    return LotListResponse(data=[_lot_to_response(lot) for lot in lots])


@router.post("/bids/{bid_id}/withdraw", response_model=SuccessResponse)
async def withdraw_bid(
    bid_id: str,
    db: AsyncSession = Depends(get_db),
    buyer: Buyer = Depends(require_buyer),
):
    await lot_service.withdraw_bid(db, buyer.id, bid_id)
    return SuccessResponse()


@router.get("/{lot_id}", response_model=LotResponse, dependencies=[Depends(get_current_principal)])
async def get_lot(lot_id: str, db: AsyncSession = Depends(get_db)):
    lot = await lot_service.get_lot(db, lot_id)
    return _lot_to_response(lot)


@router.post("/{lot_id}/bids", response_model=BidCreateResponse, status_code=201)
async def place_bid(
    lot_id: str,
    req: BidCreateRequest,
    db: AsyncSession = Depends(get_db),
    buyer: Buyer = Depends(require_buyer),
    notifier: Notifier = Depends(get_notifier),
):
    bid = await lot_service.place_bid(db, buyer.id, lot_id, req, notifier=notifier)
    return BidCreateResponse(bid_id=bid.id)


@router.get("/{lot_id}/bids", response_model=BidListResponse)
async def list_bids(
    lot_id: str,
    db: AsyncSession = Depends(get_db),
    farmer: Farmer = Depends(require_farmer),
):
    bids = await lot_service.list_bids(db, farmer.id, lot_id)
    return BidListResponse(bids=[_bid_to_response(b) for b in bids])


@router.post("/{lot_id}/bids/{bid_id}/accept", response_model=BidAcceptResponse)
async def accept_bid(
    lot_id: str,
    bid_id: str,
    db: AsyncSession = Depends(get_db),
    farmer: Farmer = Depends(require_farmer),
    escrow: EscrowLedger = Depends(get_escrow),
    notifier: Notifier = Depends(get_notifier),
):
    request = await lot_service.accept_bid(
        db, farmer.id, lot_id, bid_id, escrow=escrow, notifier=notifier
    )
    return BidAcceptResponse(request_id=request.id)


def _lot_to_response(lot) -> LotResponse:
    return LotResponse(
        id=lot.id,
        farmer_id=lot.farmer_id,
        produce_type=lot.produce_type,
        description=lot.description,
        quantity=float(lot.quantity),
        unit=lot.unit,
        reserve_price=float(lot.reserve_price or 0),
        pickup=Place(**lot.pickup),
        status=lot.status,
        awarded_bid_id=lot.awarded_bid_id,
        created_at=lot.created_at,
        updated_at=lot.updated_at,
    )


def _bid_to_response(bid) -> BidResponse:
    return BidResponse(
        id=bid.id,
        lot_id=bid.lot_id,
        buyer_id=bid.buyer_id,
        amount=float(bid.amount),
        quantity=float(bid.quantity),
        units=bid.units,
        note=bid.note,
        status=bid.status,
        created_at=bid.created_at,
    )
