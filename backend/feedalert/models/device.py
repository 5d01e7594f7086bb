"""Device model - registered app installs and their notification preferences."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, JSON

from ..database import Base


class Device(Base):
    """Registered device for push notifications."""

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_token = Column(String(255), unique=True, nullable=False, index=True)
    platform = Column(String(64), nullable=False, default="ios")  # ios, android

    # Targeting
    relevance_threshold = Column(Float, nullable=False, default=0.5)  # 0.0 - 10.0
    categories = Column(JSON, nullable=False, default=list)  # empty = all categories
    is_active = Column(Boolean, nullable=False, default=True)
    quiet_hours = Column(Boolean, nullable=False, default=False)  # stored, not enforced

    # Device info reported by the app
    device_id = Column(String(255), nullable=True)
    model = Column(String(255), nullable=True)
    system_version = Column(String(255), nullable=True)
    app_version = Column(String(255), nullable=True)
    build_number = Column(String(255), nullable=True)
    bundle_id = Column(String(255), nullable=True)
    time_zone = Column(String(255), nullable=True)
    language = Column(String(255), nullable=True)

    registered_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)
