from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (both accepted on input)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Place(CamelModel):
    name: str | None = ""
    address: str | None = ""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class OptionalPlace(CamelModel):
    name: str | None = ""
    address: str | None = ""
    lat: float | None = None
    lng: float | None = None


class SuccessResponse(BaseModel):
    success: bool = True


class HealthResponse(BaseModel):
    status: str
    version: str
    open_lots: int
    open_requests: int
    active_jobs: int
