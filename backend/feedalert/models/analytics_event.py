"""AnalyticsEvent model - app usage events reported by devices."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON

from ..database import Base


class AnalyticsEvent(Base):
    """A single usage event, e.g. notification_opened or post_viewed."""

    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_token = Column(String(255), nullable=False, index=True)
    event = Column(String(255), nullable=False)
    timestamp = Column(DateTime, nullable=False, index=True)
    platform = Column(String(64), nullable=False)
    event_metadata = Column("metadata", JSON, nullable=True)  # postId, relevance, categories, count
    created_at = Column(DateTime, default=datetime.utcnow)
