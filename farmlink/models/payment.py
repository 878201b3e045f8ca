import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Numeric, String

from farmlink.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class PaymentIntent(Base):
    """Escrow hold for one leg of a sale.

    ``job_id`` points at a DriverJob for ``transport`` intents and at a
    ProduceLot for ``product`` intents.
    """

    __tablename__ = "payment_intents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String(36), nullable=False)
    buyer_id = Column(String(36), nullable=False)
    driver_id = Column(String(36), nullable=True)  # null for product escrow
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="UGX")
    type = Column(String(20), nullable=False)  # product | transport

    # authorized -> released (captured); authorized -> failed | cancelled
    status = Column(String(20), nullable=False, default="authorized")
    provider = Column(String(30), nullable=False, default="mock")
    provider_ref = Column(String(100))

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    released_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_intents_job_type", "job_id", "type"),
        Index("idx_intents_status", "status"),
    )
