"""ReadReceipt model - posts a device has already seen."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint

from ..database import Base


class ReadReceipt(Base):
    """At most one row per (device_token, post_id) pair."""

    __tablename__ = "read_receipts"
    __table_args__ = (
        UniqueConstraint("device_token", "post_id", name="uq_read_receipts_device_post"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_token = Column(String(255), nullable=False, index=True)
    post_id = Column(String(255), nullable=False, index=True)
    read_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
