import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, Numeric, String, Text

from farmlink.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class DeliveryRequest(Base):
    """A transport need, posted by a buyer or seeded from an accepted lot bid."""

    __tablename__ = "delivery_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    buyer_id = Column(String(36), nullable=False)
    farmer_id = Column(String(36), nullable=True)
    produce_type = Column(String(100), nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(20), nullable=False, default="Kg")
    notes = Column(Text, default="")

    pickup_name = Column(String(255), default="")
    pickup_address = Column(String(500), default="")
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff_name = Column(String(255), default="")
    dropoff_address = Column(String(500), default="")
    dropoff_lat = Column(Float, nullable=False, default=0)
    dropoff_lng = Column(Float, nullable=False, default=0)

    # Set when the request was spawned from a sold lot
    lot_id = Column(String(36), ForeignKey("produce_lots.id"), nullable=True)
    product_bid_id = Column(String(36), ForeignKey("product_bids.id"), nullable=True)
    pickup_owner_id = Column(String(36), nullable=True)

    # State machine: open -> awarded (quote accepted) -> fulfilled; open -> cancelled
    status = Column(String(20), nullable=False, default="open")
    chosen_quote_id = Column(String(36), nullable=True)
    job_id = Column(String(36), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_requests_status_created", "status", "created_at"),
        Index("idx_requests_buyer", "buyer_id"),
        Index("idx_requests_lot", "lot_id"),
    )

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


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = Column(String(36), ForeignKey("delivery_requests.id"), nullable=False)
    driver_id = Column(String(36), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="UGX")
    eta_minutes = Column(Integer, nullable=False)
    note = Column(Text)

    # pending -> accepted -> active (driver confirmed); pending -> rejected | withdrawn
    status = Column(String(20), nullable=False, default="pending")
    seq = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_quotes_request_status", "request_id", "status", "created_at"),
        Index("idx_quotes_driver_status", "driver_id", "status"),
    )
