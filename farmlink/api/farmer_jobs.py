import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.api.driver_jobs import _job_to_detail
from farmlink.core.auth import Farmer, require_farmer
from farmlink.database import get_db
from farmlink.schemas.job import (
    FarmerJobFiltersResponse,
    FarmerJobListResponse,
    JobDetailResponse,
    Pagination,
    StatusCount,
)
from farmlink.services import job_service

router = APIRouter(prefix="/farmer/jobs", tags=["farmer-jobs"])


@router.get("", response_model=FarmerJobListResponse)
async def list_farmer_jobs(
    status: str | None = Query(None),
    commodity: str | None = Query(None),
    search: str | None = Query(None),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    farmer: Farmer = Depends(require_farmer),
):
    jobs, total = await job_service.list_farmer_jobs(
        db,
        farmer.id,
        status=status,
        commodity=commodity,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=limit,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return FarmerJobListResponse(
        data=[_job_to_detail(j, farmer) for j in jobs],
        pagination=Pagination(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            items_per_page=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


@router.get("/filters", response_model=FarmerJobFiltersResponse)
async def farmer_job_filters(
    db: AsyncSession = Depends(get_db),
    farmer: Farmer = Depends(require_farmer),
):
    filters = await job_service.farmer_job_filters(db, farmer.id)
    return FarmerJobFiltersResponse(
        status=[StatusCount(**s) for s in filters["status"]],
        commodities=filters["commodities"],
    )


@router.get("/{job_id}", response_model=JobDetailResponse)
async def get_farmer_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    farmer: Farmer = Depends(require_farmer),
):
    job = await job_service.get_farmer_job(db, farmer.id, job_id)
    return _job_to_detail(job, farmer)
