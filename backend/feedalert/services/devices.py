"""Device service - registration, read state, analytics and housekeeping."""
import logging
from datetime import datetime, timedelta
from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..database import async_session
from ..errors import NotFoundError
from ..models import AnalyticsEvent, Device
from ..schemas.device import DeviceRegister, DeviceUpdate, MarkPostRead, AnalyticsEventCreate
from ..utils.db_utils import retry_on_lock
from ..utils.tokens import mask_token
from .device_directory import SqlDeviceDirectory, SqlReadReceiptStore, to_naive_utc

logger = logging.getLogger(__name__)

RETENTION_DAYS = 30


class DeviceService:
    """Write side of the device directory, used by the device API and scheduler."""

    def __init__(
        self,
        directory: SqlDeviceDirectory,
        receipts: SqlReadReceiptStore,
        session_factory: async_sessionmaker = async_session,
        retention_days: int = RETENTION_DAYS,
    ):
        self.directory = directory
        self.receipts = receipts
        self._session_factory = session_factory
        self._retention_days = retention_days

    async def register_device(self, data: DeviceRegister) -> Tuple[Device, bool]:
        return await self.directory.register_device(data)

    async def update_device(self, device_token: str, data: DeviceUpdate) -> Device:
        return await self.directory.update_device(device_token, data)

    async def mark_post_read(self, device_token: str, data: MarkPostRead) -> bool:
        """Record that a device has seen a post. Repeated calls are no-ops.

        Raises:
            NotFoundError: If the device is not registered
        """
        if await self.directory.get_device(device_token) is None:
            raise NotFoundError("Device not found")
        return await self.receipts.mark_read(device_token, data.post_id, data.read_at)

    async def record_analytics_event(self, data: AnalyticsEventCreate) -> AnalyticsEvent:
        """Store an analytics event, registering unknown devices with defaults."""
        _, created = await self.directory.ensure_device(
            data.device_token,
            platform=data.platform,
            device_id=data.device_id,
            app_version=data.app_version,
            model=data.model,
        )
        if created:
            logger.info(f"Device {mask_token(data.device_token)} registered from '{data.event}' event")

        async with self._session_factory() as session:
            record = AnalyticsEvent(
                device_token=data.device_token,
                event=data.event,
                timestamp=to_naive_utc(data.timestamp),
                platform=data.platform,
                event_metadata=data.event_metadata(),
            )
            session.add(record)
            await retry_on_lock(session.commit)
            await session.refresh(record)

        logger.info(f"Recorded analytics event {data.event} for device {mask_token(data.device_token)}")
        return record

    async def device_analytics(self, device_token: str, days: int = 7) -> List[AnalyticsEvent]:
        """Events reported by a device in the last ``days`` days, newest first."""
        since = datetime.utcnow() - timedelta(days=days)
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalyticsEvent)
                .where(
                    AnalyticsEvent.device_token == device_token,
                    AnalyticsEvent.timestamp >= since,
                )
                .order_by(AnalyticsEvent.timestamp.desc())
            )
            return list(result.scalars().all())

    async def cleanup_read_receipts(self) -> int:
        return await self.receipts.purge_older_than(self._retention_days)

    async def deactivate_stale_devices(self) -> int:
        return await self.directory.deactivate_stale_devices(self._retention_days)
