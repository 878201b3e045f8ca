"""Driver job state machine and the checkpoint handlers that settle escrow.

    available ──accept──▶ active
    awaiting_driver_confirm ──confirm──▶ active ──delivery/NFC──▶ completed
    any non-terminal ──cancel──▶ cancelled

Pickup is a sub-checkpoint inside ``active``: it releases the product escrow
and stamps ``picked_up_at`` without changing the job status.

Every transition is a conditional UPDATE on the job's expected status and
version. Checkpoint handlers claim the job and its intent first, capture with
the provider while the transaction is open, and commit only after the capture
succeeds. A lost claim never reaches the provider. A failed capture raises
``PaymentFailedError`` and rolls back, leaving the job and its intents as they
were.
"""

import hmac
import json
import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.auth import Admin, Principal
from farmlink.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    JobNotFoundError,
    NotFoundError,
    PaymentFailedError,
    ValidationError,
)
from farmlink.models.delivery import DeliveryRequest, Quote
from farmlink.models.job import DriverJob
from farmlink.models.payment import PaymentIntent
from farmlink.services import nfc_service
from farmlink.services.escrow_service import EscrowLedger, find_authorized
from farmlink.services.notification_service import Notifier
from farmlink.services.request_service import get_quote_for_driver

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "cancelled")
DRIVER_ACTIVE_STATUSES = ("awaiting_driver_confirm", "active")
FARMER_SORT_FIELDS = {
    "createdAt": DriverJob.created_at,
    "created_at": DriverJob.created_at,
    "paymentAmount": DriverJob.payment_amount,
    "payment_amount": DriverJob.payment_amount,
    "status": DriverJob.status,
    "commodity": DriverJob.commodity,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _codes_match(given: str | None, expected: str | None) -> bool:
    if not expected:
        return False
    return hmac.compare_digest(str(given or "").encode(), str(expected).encode())


def _with_checkpoint(job: DriverJob, kind: str, **fields) -> str:
    entry = {"kind": kind, "at": _utcnow().isoformat()}
    entry.update({k: v for k, v in fields.items() if v is not None})
    return json.dumps(job.checkpoints + [entry])


async def _transition(db: AsyncSession, job: DriverJob, expected: str | tuple[str, ...], **values) -> None:
    """Conditionally update *job*; raise ConflictError if it moved underneath us."""
    expected_states = (expected,) if isinstance(expected, str) else expected
    result = await db.execute(
        update(DriverJob)
        .where(
            DriverJob.id == job.id,
            DriverJob.status.in_(expected_states),
            DriverJob.version == job.version,
        )
        .values(version=DriverJob.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Job %s changed concurrently (expected %s)", job.id, expected_states)
        raise ConflictError("Job was modified concurrently; retry")


async def _settle_intent(db: AsyncSession, intent: PaymentIntent, status: str) -> None:
    values = {"status": status}
    if status == "released":
        values["released_at"] = _utcnow()
    result = await db.execute(
        update(PaymentIntent)
        .where(PaymentIntent.id == intent.id, PaymentIntent.status == "authorized")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Payment intent already settled")


async def _capture_or_fail(escrow: EscrowLedger, intent: PaymentIntent) -> None:
    captured = await escrow.capture(intent)
    if not captured.ok:
        logger.warning("Capture failed for %s intent %s", intent.type, intent.id)
        raise PaymentFailedError()


async def _commit_or_rollback(db: AsyncSession, *refresh) -> None:
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    for obj in refresh:
        await db.refresh(obj)


async def get_job(db: AsyncSession, job_id: str) -> DriverJob:
    """Get a job by ID or raise 404."""
    result = await db.execute(
        select(DriverJob)
        .where(DriverJob.id == job_id)
        .execution_options(populate_existing=True)
    )
    job = result.scalar_one_or_none()
    if not job:
        raise JobNotFoundError(job_id)
    return job


async def _get_assigned_job(db: AsyncSession, driver_id: str, job_id: str) -> DriverJob:
    job = await get_job(db, job_id)
    if str(job.accepted_by) != str(driver_id):
        raise ForbiddenError("Not the driver assigned to this job")
    return job


async def get_job_for_party(db: AsyncSession, principal: Principal, job_id: str) -> DriverJob:
    """The job if *principal* is its buyer, farmer, driver or an admin."""
    job = await get_job(db, job_id)
    parties = {str(job.buyer_id), str(job.farmer_id), str(job.accepted_by)}
    if not isinstance(principal, Admin) and str(principal.id) not in parties:
        raise ForbiddenError()
    return job


async def list_driver_jobs(db: AsyncSession, driver_id: str, status: str = "available") -> list[DriverJob]:
    status = (status or "available").lower()
    query = select(DriverJob)
    if status == "available":
        query = query.where(DriverJob.status == "available")
    elif status == "active":
        query = query.where(
            DriverJob.status.in_(DRIVER_ACTIVE_STATUSES), DriverJob.accepted_by == driver_id
        )
    elif status == "completed":
        query = query.where(DriverJob.status == "completed", DriverJob.accepted_by == driver_id)
    else:
        raise ValidationError("status must be one of: available, active, completed")
    result = await db.execute(query.order_by(DriverJob.created_at.desc()))
    return list(result.scalars().all())


async def accept_available_job(
    db: AsyncSession, driver_id: str, job_id: str, *, notifier: Notifier
) -> DriverJob:
    """Claim an unassigned job. First driver wins."""
    job = await get_job(db, job_id)
    if job.status != "available":
        raise ConflictError("Job not available")
    try:
        await _transition(
            db, job, "available",
            status="active", accepted_by=driver_id, accepted_at=_utcnow(),
        )
    except Exception:
        await db.rollback()
        raise
    await _commit_or_rollback(db, job)

    notifier.publish("job:awarded", {"jobId": job.id, "status": job.status})
    return job


async def driver_confirm(
    db: AsyncSession, driver_id: str, job_id: str, *, notifier: Notifier
) -> DriverJob:
    job = await _get_assigned_job(db, driver_id, job_id)
    if job.status != "awaiting_driver_confirm":
        raise InvalidStateError("Job", job.status, "awaiting_driver_confirm")
    try:
        await _transition(db, job, "awaiting_driver_confirm", status="active")
        if job.accepted_quote_id:
            await db.execute(
                update(Quote)
                .where(Quote.id == job.accepted_quote_id, Quote.status == "accepted")
                .values(status="active")
                .execution_options(synchronize_session=False)
            )
    except Exception:
        await db.rollback()
        raise
    await _commit_or_rollback(db, job)

    logger.info("Driver %s confirmed job %s", driver_id, job.id)
    notifier.publish("job:active", {"jobId": job.id})
    return job


async def confirm_accepted_quote(
    db: AsyncSession, driver_id: str, quote_id: str, *, notifier: Notifier
) -> DriverJob:
    """Driver-app entry point: confirm the job that came out of an accepted quote."""
    quote = await get_quote_for_driver(db, driver_id, quote_id)
    result = await db.execute(
        select(DriverJob.id).where(
            DriverJob.accepted_quote_id == quote.id,
            DriverJob.status == "awaiting_driver_confirm",
        )
    )
    job_id = result.scalar_one_or_none()
    if job_id is None:
        raise NotFoundError("Job not found")
    return await driver_confirm(db, driver_id, job_id, notifier=notifier)


async def pickup_confirm(
    db: AsyncSession,
    driver_id: str,
    job_id: str,
    code: str,
    *,
    escrow: EscrowLedger,
    notifier: Notifier,
) -> DriverJob:
    """Farmer hands over the goods: check the farmer code and release the product escrow."""
    job = await _get_assigned_job(db, driver_id, job_id)
    if job.status != "active":
        raise InvalidStateError("Job", job.status, "active")
    if job.picked_up_at is not None:
        raise ConflictError("Pickup already confirmed")
    if not _codes_match(code, job.farmer_code):
        raise ValidationError("Invalid farmer code")

    intent = None
    if job.product_lot_id:
        intent = await find_authorized(db, job.product_lot_id, "product")

    try:
        await _transition(
            db, job, "active",
            picked_up_at=_utcnow(),
            checkpoints_json=_with_checkpoint(job, "pickup"),
        )
        if intent is not None:
            await _settle_intent(db, intent, "released")
            await _capture_or_fail(escrow, intent)
    except Exception:
        await db.rollback()
        raise
    await _commit_or_rollback(db, job, *([intent] if intent is not None else []))

    logger.info("Pickup confirmed for job %s", job.id)
    notifier.publish("pickup:confirmed", {"jobId": job.id})
    return job


async def _complete_with_transport(
    db: AsyncSession,
    job: DriverJob,
    *,
    escrow: EscrowLedger,
    notifier: Notifier,
    via: str,
    require_intent: bool,
) -> DriverJob:
    intent = await find_authorized(db, job.id, "transport")
    if intent is None and require_intent:
        raise ConflictError("No authorized transport payment")

    now = _utcnow()
    try:
        await _transition(
            db, job, "active",
            status="completed",
            delivered_at=now,
            checkpoints_json=_with_checkpoint(job, "delivery", note=via),
        )
        if intent is not None:
            await _settle_intent(db, intent, "released")
        if job.request_id:
            await db.execute(
                update(DeliveryRequest)
                .where(DeliveryRequest.id == job.request_id, DeliveryRequest.status == "awarded")
                .values(status="fulfilled", version=DeliveryRequest.version + 1)
                .execution_options(synchronize_session=False)
            )
        if intent is not None:
            await _capture_or_fail(escrow, intent)
    except Exception:
        await db.rollback()
        raise
    await _commit_or_rollback(db, job, *([intent] if intent is not None else []))

    logger.info("Job %s completed via %s", job.id, via)
    notifier.publish("job:completed", {"jobId": job.id})
    return job


async def delivery_confirm(
    db: AsyncSession,
    driver_id: str,
    job_id: str,
    code: str,
    *,
    escrow: EscrowLedger,
    notifier: Notifier,
) -> DriverJob:
    """Buyer receives the goods: check the buyer code, release transport escrow, complete."""
    job = await _get_assigned_job(db, driver_id, job_id)
    if job.status != "active":
        raise InvalidStateError("Job", job.status, "active")
    if not _codes_match(code, job.buyer_code):
        raise ValidationError("Invalid buyer code")
    return await _complete_with_transport(
        db, job, escrow=escrow, notifier=notifier, via="code", require_intent=False
    )


async def release_by_nfc(
    db: AsyncSession,
    job_id: str,
    *,
    tag_id: str | None = None,
    ndef_text: str | None = None,
    escrow: EscrowLedger,
    notifier: Notifier,
) -> DriverJob:
    """Contactless delivery: the tapped tag must belong to the job's driver."""
    job = await get_job(db, job_id)
    if job.status != "active":
        raise ConflictError("Job not active")
    derived = nfc_service.resolve_tag(tag_id, ndef_text)
    tag = await nfc_service.lookup(db, derived)
    if str(tag.driver_id) != str(job.accepted_by):
        raise ForbiddenError("Tag does not match driver")
    return await _complete_with_transport(
        db, job, escrow=escrow, notifier=notifier, via="nfc", require_intent=True
    )


async def cancel_job(
    db: AsyncSession, principal: Principal, job_id: str, *, notifier: Notifier
) -> DriverJob:
    """Cancel a non-terminal job and void its held transport escrow."""
    job = await get_job(db, job_id)
    allowed = {str(job.buyer_id), str(job.accepted_by)}
    if not isinstance(principal, Admin) and str(principal.id) not in allowed:
        raise ForbiddenError()
    if job.status in TERMINAL_STATUSES:
        raise ConflictError(f"Job is already {job.status}")
    try:
        await _transition(
            db, job, job.status,
            status="cancelled",
            cancelled_at=_utcnow(),
            checkpoints_json=_with_checkpoint(job, "cancelled", note=principal.role),
        )
        await db.execute(
            update(PaymentIntent)
            .where(
                PaymentIntent.job_id == job.id,
                PaymentIntent.type == "transport",
                PaymentIntent.status == "authorized",
            )
            .values(status="cancelled")
            .execution_options(synchronize_session=False)
        )
    except Exception:
        await db.rollback()
        raise
    await _commit_or_rollback(db, job)

    logger.info("Job %s cancelled by %s %s", job.id, principal.role, principal.id)
    notifier.publish("job:cancelled", {"jobId": job.id})
    return job


async def record_checkpoint(
    db: AsyncSession,
    driver_id: str,
    job_id: str,
    lat: float,
    lng: float,
    note: str | None = None,
) -> DriverJob:
    """Store a location sample on an active job."""
    job = await _get_assigned_job(db, driver_id, job_id)
    if job.status != "active":
        raise InvalidStateError("Job", job.status, "active")
    try:
        await _transition(
            db, job, "active",
            checkpoints_json=_with_checkpoint(job, "location", lat=lat, lng=lng, note=note),
        )
    except Exception:
        await db.rollback()
        raise
    await _commit_or_rollback(db, job)
    return job


async def list_farmer_jobs(
    db: AsyncSession,
    farmer_id: str,
    *,
    status: str | None = None,
    commodity: str | None = None,
    search: str | None = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[DriverJob], int]:
    """Jobs moving the farmer's produce, with filters and pagination."""
    conditions = [DriverJob.farmer_id == farmer_id]
    if status and status != "all":
        conditions.append(DriverJob.status == status)
    if commodity and commodity != "all":
        conditions.append(DriverJob.commodity.ilike(f"%{commodity}%"))
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(
            DriverJob.reference_no.ilike(pattern),
            DriverJob.commodity.ilike(pattern),
            DriverJob.pickup_name.ilike(pattern),
            DriverJob.pickup_address.ilike(pattern),
            DriverJob.dropoff_name.ilike(pattern),
            DriverJob.dropoff_address.ilike(pattern),
        ))

    total = (
        await db.execute(select(func.count(DriverJob.id)).where(*conditions))
    ).scalar() or 0

    sort_col = FARMER_SORT_FIELDS.get(sort_by, DriverJob.created_at)
    order = sort_col.desc() if sort_order == "desc" else sort_col.asc()
    result = await db.execute(
        select(DriverJob)
        .where(*conditions)
        .order_by(order)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def farmer_job_filters(db: AsyncSession, farmer_id: str) -> dict:
    status_rows = await db.execute(
        select(DriverJob.status, func.count(DriverJob.id))
        .where(DriverJob.farmer_id == farmer_id)
        .group_by(DriverJob.status)
    )
    commodity_rows = await db.execute(
        select(DriverJob.commodity)
        .where(DriverJob.farmer_id == farmer_id)
        .distinct()
    )
    return {
        "status": [{"status": s, "count": c} for s, c in status_rows.all()],
        "commodities": sorted(c for c in commodity_rows.scalars().all() if c),
    }


async def get_farmer_job(db: AsyncSession, farmer_id: str, job_id: str) -> DriverJob:
    job = await get_job(db, job_id)
    if str(job.farmer_id) != str(farmer_id):
        raise ForbiddenError()
    return job
