"""Error types raised by the notification core."""
from typing import Optional


class FeedAlertError(Exception):
    """Base class for all notification core errors."""


class ValidationError(FeedAlertError):
    """Input rejected before any directory write (e.g. malformed device token)."""


class NotFoundError(FeedAlertError):
    """Operation referenced a device token the directory does not know."""


class DeliveryError(FeedAlertError):
    """The push gateway could not deliver to a single device."""

    def __init__(self, device_token: str, reason: str, status: Optional[str] = None):
        self.device_token = device_token
        self.reason = reason
        self.status = status
        super().__init__(reason)


class OrchestrationError(FeedAlertError):
    """The broadcast or push step of a notification failed."""

    def __init__(self, kind: str, content_id: str, duration_ms: int):
        self.kind = kind
        self.content_id = content_id
        self.duration_ms = duration_ms
        super().__init__(f"{kind} notification {content_id} failed after {duration_ms}ms")
