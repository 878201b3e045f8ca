from datetime import datetime

from farmlink.schemas.common import CamelModel


class TagRef(CamelModel):
    tag_id: str | None = None
    ndef_text: str | None = None


class TagResponse(CamelModel):
    id: str
    tag_id: str
    ndef_text: str | None = None
    active: bool
    created_at: datetime


class TagRegisterResponse(CamelModel):
    tag: TagResponse


class TagListResponse(CamelModel):
    tags: list[TagResponse]


class PaymentIntentResponse(CamelModel):
    id: str
    job_id: str
    buyer_id: str
    driver_id: str | None = None
    amount: float
    currency: str
    type: str
    status: str
    provider: str
    provider_ref: str | None = None
    created_at: datetime
    released_at: datetime | None = None


class PaymentIntentListResponse(CamelModel):
    data: list[PaymentIntentResponse]
