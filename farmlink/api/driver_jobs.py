from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.deps import get_escrow, get_notifier
from farmlink.core.auth import Driver, Principal, get_current_principal, require_driver
from farmlink.database import get_db
from farmlink.schemas.common import OptionalPlace, SuccessResponse
from farmlink.schemas.job import (
    Checkpoint,
    CheckpointCodeRequest,
    CheckpointSampleRequest,
    JobDetailResponse,
    JobListResponse,
    JobResponse,
    TrackingResponse,
)
from farmlink.services import job_service
from farmlink.services.escrow_service import EscrowLedger
from farmlink.services.notification_service import Notifier

router = APIRouter(prefix="/driver/jobs", tags=["driver-jobs"])


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: str = Query("available"),
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    jobs = await job_service.list_driver_jobs(db, driver.id, status)
    return JobListResponse(data=[_job_to_response(j) for j in jobs])


@router.get("/{job_id}", response_model=JobDetailResponse)
async def get_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    job = await job_service.get_job(db, job_id)
    return _job_to_detail(job, principal)


@router.post("/{job_id}/accept", response_model=JobResponse)
async def accept_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
    notifier: Notifier = Depends(get_notifier),
):
    job = await job_service.accept_available_job(db, driver.id, job_id, notifier=notifier)
    return _job_to_response(job)


@router.post("/{job_id}/confirm", response_model=JobResponse)
async def confirm_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
    notifier: Notifier = Depends(get_notifier),
):
    job = await job_service.driver_confirm(db, driver.id, job_id, notifier=notifier)
    return _job_to_response(job)


@router.post("/{job_id}/pickup-confirm", response_model=SuccessResponse)
async def pickup_confirm(
    job_id: str,
    req: CheckpointCodeRequest,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
    escrow: EscrowLedger = Depends(get_escrow),
    notifier: Notifier = Depends(get_notifier),
):
    await job_service.pickup_confirm(
        db, driver.id, job_id, req.code, escrow=escrow, notifier=notifier
    )
    return SuccessResponse()


@router.post("/{job_id}/delivery-confirm", response_model=SuccessResponse)
async def delivery_confirm(
    job_id: str,
    req: CheckpointCodeRequest,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
    escrow: EscrowLedger = Depends(get_escrow),
    notifier: Notifier = Depends(get_notifier),
):
    await job_service.delivery_confirm(
        db, driver.id, job_id, req.code, escrow=escrow, notifier=notifier
    )
    return SuccessResponse()


@router.post("/{job_id}/checkpoints", response_model=TrackingResponse, status_code=201)
async def record_checkpoint(
    job_id: str,
    req: CheckpointSampleRequest,
    db: AsyncSession = Depends(get_db),
    driver: Driver = Depends(require_driver),
):
    job = await job_service.record_checkpoint(db, driver.id, job_id, req.lat, req.lng, req.note)
    return _tracking(job)


@router.get("/{job_id}/tracking", response_model=TrackingResponse)
async def tracking(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    job = await job_service.get_job(db, job_id)
    return _tracking(job)


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier: Notifier = Depends(get_notifier),
):
    job = await job_service.cancel_job(db, principal, job_id, notifier=notifier)
    return _job_to_response(job)


def _tracking(job) -> TrackingResponse:
    return TrackingResponse(
        status=job.status,
        checkpoints=[Checkpoint(**c) for c in job.checkpoints],
    )


def _job_fields(job) -> dict:
    return dict(
        id=job.id,
        reference_no=job.reference_no,
        buyer_id=job.buyer_id,
        farmer_id=job.farmer_id,
        product_lot_id=job.product_lot_id,
        request_id=job.request_id,
        accepted_quote_id=job.accepted_quote_id,
        accepted_by=job.accepted_by,
        accepted_at=job.accepted_at,
        commodity=job.commodity,
        quantity=float(job.quantity) if job.quantity is not None else None,
        unit=job.unit,
        payment_amount=float(job.payment_amount),
        instructions=job.instructions,
        pickup=OptionalPlace(**job.pickup),
        dropoff=OptionalPlace(**job.dropoff),
        status=job.status,
        picked_up_at=job.picked_up_at,
        delivered_at=job.delivered_at,
        checkpoints=[Checkpoint(**c) for c in job.checkpoints],
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def _job_to_response(job) -> JobResponse:
    return JobResponse(**_job_fields(job))


def _job_to_detail(job, principal: Principal) -> JobDetailResponse:
    """Each party only ever sees the code they hand to the driver."""
    return JobDetailResponse(
        **_job_fields(job),
        farmer_code=job.farmer_code if str(principal.id) == str(job.farmer_id) else None,
        buyer_code=job.buyer_code if str(principal.id) == str(job.buyer_id) else None,
    )
