import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink import __version__
from farmlink.database import get_db
from farmlink.models.delivery import DeliveryRequest
from farmlink.models.job import DriverJob
from farmlink.models.lot import ProduceLot
from farmlink.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    lots = (
        await db.execute(select(func.count(ProduceLot.id)).where(ProduceLot.status == "open"))
    ).scalar() or 0
    requests = (
        await db.execute(
            select(func.count(DeliveryRequest.id)).where(DeliveryRequest.status == "open")
        )
    ).scalar() or 0
    jobs = (
        await db.execute(select(func.count(DriverJob.id)).where(DriverJob.status == "active"))
    ).scalar() or 0

    return HealthResponse(
        status="healthy",
        version=__version__,
        open_lots=lots,
        open_requests=requests,
        active_jobs=jobs,
    )


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed, database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )
