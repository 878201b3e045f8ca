from datetime import datetime

from pydantic import Field

from farmlink.schemas.common import CamelModel, OptionalPlace, Place
from farmlink.schemas.lot import UNIT_PATTERN


class DeliveryRequestCreate(CamelModel):
    produce_type: str = Field(..., min_length=1, max_length=100)
    quantity: float = Field(..., gt=0)
    unit: str = Field(default="Kg", pattern=UNIT_PATTERN)
    pickup: Place
    dropoff: Place
    notes: str | None = ""
    farmer_id: str | None = None


class DeliveryRequestCreateResponse(CamelModel):
    id: str
    status: str


class DeliveryRequestResponse(CamelModel):
    id: str
    buyer_id: str
    farmer_id: str | None = None
    produce_type: str
    quantity: float
    unit: str
    notes: str | None = ""
    pickup: OptionalPlace
    dropoff: OptionalPlace
    lot_id: str | None = None
    product_bid_id: str | None = None
    status: str
    chosen_quote_id: str | None = None
    job_id: str | None = None
    quotes_count: int | None = None
    created_at: datetime


class DeliveryRequestListResponse(CamelModel):
    data: list[DeliveryRequestResponse]


class QuoteCreateRequest(CamelModel):
    amount: float = Field(..., gt=0)
    eta_minutes: int = Field(..., gt=0)
    note: str | None = None


class QuoteCreateResponse(CamelModel):
    quote_id: str


class QuoteResponse(CamelModel):
    id: str
    request_id: str
    driver_id: str
    amount: float
    currency: str
    eta_minutes: int
    note: str | None = None
    status: str
    created_at: datetime


class QuoteListResponse(CamelModel):
    quotes: list[QuoteResponse]


class MyQuoteListResponse(CamelModel):
    data: list[QuoteResponse]


class QuoteAcceptResponse(CamelModel):
    job_id: str
