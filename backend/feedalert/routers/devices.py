"""Device registration API endpoints for push notifications."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..dependencies import get_device_service, get_notification_service
from ..errors import NotFoundError, ValidationError
from ..schemas.device import (
    DeviceRegister,
    DeviceRegistrationResponse,
    DeviceUpdate,
    MarkPostRead,
    AnalyticsEventResponse,
)
from ..services.devices import DeviceService
from ..services.notifier import NotificationService
from ..utils.tokens import mask_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["devices"])


class TestNotificationResponse(BaseModel):
    """Outcome of a test push."""
    success: int
    failed: int
    errors: List[str]


@router.post("", response_model=DeviceRegistrationResponse, status_code=201)
async def register_device(
    request: DeviceRegister,
    devices: DeviceService = Depends(get_device_service),
):
    """Register a device for push notifications.

    If the device token already exists, update it. Otherwise create a new record.
    The app should call this on every launch to keep its settings current.
    """
    logger.info(f"Registering device: {mask_token(request.device_token)} (platform: {request.platform})")
    try:
        device, _ = await devices.register_device(request)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return DeviceRegistrationResponse(id=str(device.id), status="registered")


@router.put("/{device_token}", status_code=204)
async def update_device(
    device_token: str,
    request: DeviceUpdate,
    devices: DeviceService = Depends(get_device_service),
):
    """Update device settings (relevance threshold, active status)."""
    try:
        await devices.update_device(device_token, request)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{device_token}/read", status_code=204)
async def mark_post_read(
    device_token: str,
    request: MarkPostRead,
    devices: DeviceService = Depends(get_device_service),
):
    """Mark a post as read so the device is not pushed about it again."""
    try:
        await devices.mark_post_read(device_token, request)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{device_token}/test", response_model=TestNotificationResponse, status_code=202)
async def send_test_notification(
    device_token: str,
    notifications: NotificationService = Depends(get_notification_service),
):
    """Send a test push straight to one device, bypassing eligibility."""
    try:
        result = await notifications.send_test_notification(device_token)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if result.failed:
        raise HTTPException(status_code=502, detail=result.errors[0] if result.errors else "Push failed")
    return TestNotificationResponse(success=result.success, failed=result.failed, errors=result.errors)


@router.get("/{device_token}/analytics", response_model=List[AnalyticsEventResponse])
async def get_device_analytics(
    device_token: str,
    days: int = Query(7, ge=1, le=90),
    devices: DeviceService = Depends(get_device_service),
):
    """Get analytics events reported by a device, newest first."""
    events = await devices.device_analytics(device_token, days=days)
    return [
        AnalyticsEventResponse(
            event=event.event,
            timestamp=event.timestamp,
            platform=event.platform,
            metadata=event.event_metadata,
        )
        for event in events
    ]
