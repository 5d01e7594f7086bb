"""Pydantic schemas for API request/response models and notifiable content."""
from .device import (
    DeviceInfo,
    Preferences,
    DeviceRegister,
    DeviceRegistrationResponse,
    DeviceUpdate,
    MarkPostRead,
    AnalyticsEventCreate,
    AnalyticsEventResponse,
)
from .notification import (
    PostNotification,
    EventNotification,
    Category,
    IngestedPost,
    StreamHealth,
)

__all__ = [
    "DeviceInfo",
    "Preferences",
    "DeviceRegister",
    "DeviceRegistrationResponse",
    "DeviceUpdate",
    "MarkPostRead",
    "AnalyticsEventCreate",
    "AnalyticsEventResponse",
    "PostNotification",
    "EventNotification",
    "Category",
    "IngestedPost",
    "StreamHealth",
]
