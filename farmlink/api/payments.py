from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.deps import get_escrow, get_notifier
from farmlink.core.auth import Principal, get_current_principal
from farmlink.database import get_db
from farmlink.schemas.common import SuccessResponse
from farmlink.schemas.payment import PaymentIntentListResponse, PaymentIntentResponse, TagRef
from farmlink.services import job_service
from farmlink.services.escrow_service import EscrowLedger, list_intents
from farmlink.services.notification_service import Notifier

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/jobs/{job_id}/release-nfc", response_model=SuccessResponse)
async def release_by_nfc(
    job_id: str,
    req: TagRef,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    escrow: EscrowLedger = Depends(get_escrow),
    notifier: Notifier = Depends(get_notifier),
):
    await job_service.release_by_nfc(
        db,
        job_id,
        tag_id=req.tag_id,
        ndef_text=req.ndef_text,
        escrow=escrow,
        notifier=notifier,
    )
    return SuccessResponse()


@router.get("/jobs/{job_id}/intents", response_model=PaymentIntentListResponse)
async def list_job_intents(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Transport intent for the job plus the product intent of its lot, if any."""
    job = await job_service.get_job_for_party(db, principal, job_id)
    intents = await list_intents(db, job.id, job.product_lot_id)
    return PaymentIntentListResponse(data=[_intent_to_response(i) for i in intents])


def _intent_to_response(intent) -> PaymentIntentResponse:
    return PaymentIntentResponse(
        id=intent.id,
        job_id=intent.job_id,
        buyer_id=intent.buyer_id,
        driver_id=intent.driver_id,
        amount=float(intent.amount),
        currency=intent.currency,
        type=intent.type,
        status=intent.status,
        provider=intent.provider,
        provider_ref=intent.provider_ref,
        created_at=intent.created_at,
        released_at=intent.released_at,
    )
