"""Device directory schemas for API.

The mobile app speaks camelCase JSON; fields are also accepted by their
Python names.
"""
from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for request/response bodies exchanged with the mobile app."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class DeviceInfo(CamelModel):
    """Hardware and app build details reported on registration."""
    device_id: str
    model: Optional[str] = None
    system_version: Optional[str] = None
    app_version: Optional[str] = None
    build_number: Optional[str] = None
    bundle_id: Optional[str] = None
    time_zone: Optional[str] = None
    language: Optional[str] = None


class Preferences(CamelModel):
    """User notification preferences."""
    categories: List[str] = Field(default_factory=list)  # empty = all categories
    quiet_hours: bool = False


class DeviceRegister(CamelModel):
    """Schema for registering (or re-registering) a device."""
    device_token: str
    platform: str = "ios"
    relevance_threshold: float = Field(0.5, ge=0, le=10)
    is_active: bool = True
    device_info: DeviceInfo
    preferences: Preferences = Field(default_factory=Preferences)
    registered_at: datetime


class DeviceRegistrationResponse(CamelModel):
    """Response after registering a device."""
    id: str
    status: str = "registered"


class DeviceUpdate(CamelModel):
    """Schema for updating device settings. Omitted fields are left unchanged."""
    relevance_threshold: Optional[float] = Field(None, ge=0, le=10)
    is_active: Optional[bool] = None
    last_updated: datetime


class MarkPostRead(CamelModel):
    """Schema for marking a post as read on a device."""
    post_id: str
    read_at: datetime


class AnalyticsEventCreate(CamelModel):
    """Schema for an analytics event reported by the app."""
    device_token: str
    event: str
    timestamp: datetime
    platform: Literal["ios", "android"]
    post_id: Optional[str] = None
    relevance: Optional[float] = None
    categories: Optional[List[str]] = None
    count: Optional[int] = None

    # Optional device details used when the token is not yet registered
    device_id: Optional[str] = None
    app_version: Optional[str] = None
    model: Optional[str] = None

    def event_metadata(self) -> dict:
        """Collect the optional event fields that were actually sent."""
        metadata = {}
        if self.post_id:
            metadata["postId"] = self.post_id
        if self.relevance is not None:
            metadata["relevance"] = self.relevance
        if self.categories:
            metadata["categories"] = self.categories
        if self.count is not None:
            metadata["count"] = self.count
        return metadata


class AnalyticsEventResponse(CamelModel):
    """Analytics event as returned by the per-device listing."""
    event: str
    timestamp: datetime
    platform: str
    metadata: Optional[dict] = None
