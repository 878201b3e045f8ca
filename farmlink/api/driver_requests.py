from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.deps import get_notifier
from farmlink.api.driver_jobs import _job_to_response
from farmlink.api.requests import _quote_to_response, _request_to_response
from farmlink.core.auth import Driver, require_driver
from farmlink.core.exceptions import ValidationError
from farmlink.database import get_db
from farmlink.schemas.common import SuccessResponse
from farmlink.schemas.job import JobResponse
from farmlink.schemas.request import (
    DeliveryRequestListResponse,
    MyQuoteListResponse,
    QuoteCreateRequest,
    QuoteCreateResponse,
    QuoteResponse,
)
from farmlink.services import job_service, request_service
from farmlink.services.notification_service import Notifier

router = APIRouter(prefix="/driver/requests", tags=["driver-requests"])


@router.get("/open", response_model=DeliveryRequestListResponse)
async def open_requests(
    lat: float | None = Query(None, alias="nearLat", ge=-90, le=90),
    lng: float | None = Query(None, alias="nearLng", ge=-180, le=180),
    within_km: float | None = Query(None, gt=0),
    include_quoted: bool = Query(False, alias="includeQuoted"),
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    if (lat is None) != (lng is None):
        raise ValidationError("nearLat and nearLng must be given together")
    near = {"lat": lat, "lng": lng} if lat is not None else None
    rows = await request_service.open_requests(
        db, driver.id, near=near, radius_km=within_km, include_quoted=include_quoted
    )
    return DeliveryRequestListResponse(data=[_request_to_response(r) for r in rows])


@router.get("/quotes", response_model=MyQuoteListResponse)
async def list_my_quotes(
    status: str = Query("pending"),
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    quotes = await request_service.list_my_quotes(db, driver.id, status)
    return MyQuoteListResponse(data=[_quote_to_response(q) for q in quotes])


@router.patch("/quotes/{quote_id}/withdraw", response_model=SuccessResponse)
async def withdraw_quote(
    quote_id: str,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    await request_service.withdraw_quote(db, driver.id, quote_id)
    return SuccessResponse()


@router.post("/quotes/{quote_id}/confirm", response_model=JobResponse)
async def confirm_accepted_quote(
    quote_id: str,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
    notifier: Notifier = Depends(get_notifier),
):
    job = await job_service.confirm_accepted_quote(db, driver.id, quote_id, notifier=notifier)
    return _job_to_response(job)


@router.post("/{request_id}/quote", response_model=QuoteCreateResponse, status_code=201)
async def submit_quote(
    request_id: str,
    req: QuoteCreateRequest,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
    notifier: Notifier = Depends(get_notifier),
):
    quote = await request_service.submit_quote(db, driver.id, request_id, req, notifier=notifier)
    return QuoteCreateResponse(quote_id=quote.id)


@router.get("/{request_id}/quotes/my", response_model=QuoteResponse)
async def get_my_quote(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    quote = await request_service.get_my_quote(db, driver.id, request_id)
    return _quote_to_response(quote)
