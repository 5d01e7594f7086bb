"""FastAPI dependencies resolving the services wired onto the application."""
from fastapi import Request

from .services.connection_registry import ConnectionRegistry
from .services.devices import DeviceService
from .services.notifier import NotificationService


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry


def get_device_service(request: Request) -> DeviceService:
    return request.app.state.device_service


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service
