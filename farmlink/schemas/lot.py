from datetime import datetime

from pydantic import Field

from farmlink.schemas.common import CamelModel, Place

UNIT_PATTERN = "^(Kg|Bags|Trays|Crates|Litres|Tonnes)$"


class LotCreateRequest(CamelModel):
    produce_type: str = Field(..., min_length=1, max_length=100)
    quantity: float = Field(..., gt=0)
    description: str | None = ""
    unit: str = Field(default="Kg", pattern=UNIT_PATTERN)
    reserve_price: float = Field(default=0, ge=0)
    pickup: Place


class LotCreateResponse(CamelModel):
    id: str
    status: str


class LotResponse(CamelModel):
    id: str
    farmer_id: str
    produce_type: str
    description: str | None = ""
    quantity: float
    unit: str
    reserve_price: float
    pickup: Place
    status: str
    awarded_bid_id: str | None = None
    created_at: datetime
    updated_at: datetime


class LotListResponse(CamelModel):
    data: list[LotResponse]


class BidCreateRequest(CamelModel):
    amount: float = Field(..., gt=0)
    quantity: float = Field(..., gt=0)
    units: str | None = None
    note: str | None = None


class BidCreateResponse(CamelModel):
    bid_id: str


class BidResponse(CamelModel):
    id: str
    lot_id: str
    buyer_id: str
    amount: float
    quantity: float
    units: str | None = None
    note: str | None = None
    status: str
    created_at: datetime


class BidListResponse(CamelModel):
    bids: list[BidResponse]


class BidAcceptResponse(CamelModel):
    request_id: str
