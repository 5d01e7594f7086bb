"""Services for live streaming, eligibility, push delivery and device housekeeping."""
from .broadcast_bus import BroadcastBus
from .connection_registry import ConnectionRegistry
from .eligibility import EligibilityResolver
from .batch_dispatcher import BatchDispatcher
from .push_gateway import PushGateway, PushConfig, PushPayload
from .notifier import NotificationService
from .device_directory import SqlDeviceDirectory, SqlReadReceiptStore
from .devices import DeviceService
from .scheduler import SchedulerService

__all__ = [
    "BroadcastBus",
    "ConnectionRegistry",
    "EligibilityResolver",
    "BatchDispatcher",
    "PushGateway",
    "PushConfig",
    "PushPayload",
    "NotificationService",
    "SqlDeviceDirectory",
    "SqlReadReceiptStore",
    "DeviceService",
    "SchedulerService",
]
