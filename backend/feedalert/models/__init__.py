"""Database models."""
from .device import Device
from .read_receipt import ReadReceipt
from .analytics_event import AnalyticsEvent

__all__ = ["Device", "ReadReceipt", "AnalyticsEvent"]
