import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, Integer, Numeric, String, Text

from farmlink.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def new_reference_no() -> str:
    """Human-readable job reference, e.g. ``JOB-3F9A1C0B``."""
    return f"JOB-{uuid.uuid4().hex[:8].upper()}"


class DriverJob(Base):
    __tablename__ = "driver_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reference_no = Column(String(20), nullable=False, unique=True, default=new_reference_no)

    buyer_id = Column(String(36), nullable=True)
    farmer_id = Column(String(36), nullable=True)
    product_lot_id = Column(String(36), nullable=True)
    request_id = Column(String(36), nullable=True)
    accepted_quote_id = Column(String(36), nullable=True)
    accepted_by = Column(String(36), nullable=True)  # driver id
    accepted_at = Column(DateTime(timezone=True))

    commodity = Column(String(100), nullable=False)
    quantity = Column(Numeric(14, 3))
    unit = Column(String(20), default="Kg")
    payment_amount = Column(Numeric(14, 2), nullable=False)
    instructions = Column(Text, default="")

    pickup_name = Column(String(255), default="")
    pickup_address = Column(String(500), default="")
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff_name = Column(String(255), default="")
    dropoff_address = Column(String(500), default="")
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)

    # Single-use checkpoint secrets shown to the farmer and buyer respectively
    farmer_code = Column(String(8), nullable=True)
    buyer_code = Column(String(8), nullable=True)

    # State machine: available -> awaiting_driver_confirm -> active -> completed
    #                (any non-terminal state -> cancelled)
    status = Column(String(30), nullable=False, default="available")
    version = Column(Integer, nullable=False, default=1)

    picked_up_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))
    checkpoints_json = Column(Text, nullable=False, default="[]")

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_jobs_status_created", "status", "created_at"),
        Index("idx_jobs_driver_status", "accepted_by", "status"),
        Index("idx_jobs_farmer", "farmer_id"),
    )

    @property
    def checkpoints(self) -> list[dict]:
        return json.loads(self.checkpoints_json or "[]")

    @property
    def pickup(self) -> dict:
        return {
            "name": self.pickup_name or "",
            "address": self.pickup_address or "",
            "lat": self.pickup_lat,
            "lng": self.pickup_lng,
        }

    @property
    def dropoff(self) -> dict:
        return {
            "name": self.dropoff_name or "",
            "address": self.dropoff_address or "",
            "lat": self.dropoff_lat,
            "lng": self.dropoff_lng,
        }
