import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, Numeric, String, Text

from farmlink.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class ProduceLot(Base):
    __tablename__ = "produce_lots"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    farmer_id = Column(String(36), nullable=False)
    produce_type = Column(String(100), nullable=False)
    description = Column(Text, default="")
    quantity = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(20), nullable=False, default="Kg")  # Kg | Bags | Trays | Crates | Litres | Tonnes
    reserve_price = Column(Numeric(14, 2), nullable=False, default=0)

    pickup_name = Column(String(255), default="")
    pickup_address = Column(String(500), default="")
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)

    # State machine: open -> awarded (bid accepted); open -> closed | cancelled
    status = Column(String(20), nullable=False, default="open")
    awarded_bid_id = Column(String(36), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_lots_status_created", "status", "created_at"),
        Index("idx_lots_farmer", "farmer_id"),
    )

    @property
    def pickup(self) -> dict:
        return {
            "name": self.pickup_name or "",
            "address": self.pickup_address or "",
            "lat": self.pickup_lat,
            "lng": self.pickup_lng,
        }


class ProductBid(Base):
    __tablename__ = "product_bids"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lot_id = Column(String(36), ForeignKey("produce_lots.id"), nullable=False)
    buyer_id = Column(String(36), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False)
    units = Column(String(20))
    note = Column(Text)

    # pending -> accepted | rejected | withdrawn
    status = Column(String(20), nullable=False, default="pending")
    # Monotonic submission order; breaks ties between equal amounts
    seq = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_bids_lot_status", "lot_id", "status", "created_at"),
        Index("idx_bids_buyer", "buyer_id"),
    )
