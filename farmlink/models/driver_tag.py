import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text

from farmlink.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class DriverTag(Base):
    __tablename__ = "driver_tags"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    driver_id = Column(String(36), nullable=False)
    tag_id = Column(String(255), nullable=False, unique=True)
    ndef_text = Column(Text)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_driver_tags_driver", "driver_id", "tag_id"),
    )
