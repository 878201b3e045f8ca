from datetime import datetime

from pydantic import Field, field_validator

from farmlink.schemas.common import CamelModel, OptionalPlace


class CheckpointCodeRequest(CamelModel):
    code: str = ""

    @field_validator("code", mode="before")
    @classmethod
    def _code_as_text(cls, v):
        # Keypads post the code as a JSON number
        if v is None:
            return ""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class CheckpointSampleRequest(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    note: str | None = None


class Checkpoint(CamelModel):
    kind: str
    at: datetime
    lat: float | None = None
    lng: float | None = None
    note: str | None = None


class JobResponse(CamelModel):
    id: str
    reference_no: str
    buyer_id: str | None = None
    farmer_id: str | None = None
    product_lot_id: str | None = None
    request_id: str | None = None
    accepted_quote_id: str | None = None
    accepted_by: str | None = None
    accepted_at: datetime | None = None
    commodity: str
    quantity: float | None = None
    unit: str | None = None
    payment_amount: float
    instructions: str | None = ""
    pickup: OptionalPlace
    dropoff: OptionalPlace
    status: str
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    checkpoints: list[Checkpoint] = []
    created_at: datetime
    updated_at: datetime


class JobDetailResponse(JobResponse):
    """Job as seen by its buyer or farmer, including the checkpoint code they hold."""

    farmer_code: str | None = None
    buyer_code: str | None = None


class JobListResponse(CamelModel):
    data: list[JobResponse]


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool


class FarmerJobListResponse(CamelModel):
    data: list[JobDetailResponse]
    pagination: Pagination


class StatusCount(CamelModel):
    status: str
    count: int


class FarmerJobFiltersResponse(CamelModel):
    status: list[StatusCount]
    commodities: list[str]


class TrackingResponse(CamelModel):
    status: str
    checkpoints: list[Checkpoint]
