"""Analytics event ingestion endpoint."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_device_service
from ..errors import ValidationError
from ..schemas.device import AnalyticsEventCreate
from ..services.devices import DeviceService
from ..utils.tokens import mask_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.post("", status_code=204)
async def record_analytics_event(
    request: AnalyticsEventCreate,
    devices: DeviceService = Depends(get_device_service),
):
    """Record an app usage event.

    Unknown device tokens are registered on the fly with default settings.
    """
    logger.info(f"Recording analytics event: {request.event} for device {mask_token(request.device_token)}")
    try:
        await devices.record_analytics_event(request)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
