"""SQL-backed device directory and read-receipt store."""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import async_session
from ..errors import NotFoundError
from ..models import Device, ReadReceipt
from ..schemas.device import DeviceRegister, DeviceUpdate
from ..utils.db_utils import retry_on_lock
from ..utils.tokens import mask_token, validate_device_token

logger = logging.getLogger(__name__)

# Settings for devices created implicitly by an analytics event
AUTO_REGISTER_THRESHOLD = 0.5


def to_naive_utc(value: datetime) -> datetime:
    """Store timestamps as naive UTC, matching the column defaults."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SqlDeviceDirectory:
    """Device registrations stored in the ``devices`` table."""

    def __init__(self, session_factory: async_sessionmaker = async_session):
        self._session_factory = session_factory

    async def _get(self, session: AsyncSession, device_token: str) -> Optional[Device]:
        result = await session.execute(
            select(Device).where(Device.device_token == device_token)
        )
        return result.scalar_one_or_none()

    async def get_device(self, device_token: str) -> Optional[Device]:
        async with self._session_factory() as session:
            return await self._get(session, device_token)

    async def list_devices(self, active_only: bool = False) -> List[Device]:
        async with self._session_factory() as session:
            query = select(Device).order_by(Device.id)
            if active_only:
                query = query.where(Device.is_active.is_(True))
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_eligible_devices(self, relevance: float, active_only: bool = True) -> List[Device]:
        """Devices whose threshold is at or below ``relevance``.

        Category matching happens in the resolver; JSON overlap queries
        differ between SQLite and PostgreSQL.
        """
        async with self._session_factory() as session:
            query = select(Device).where(Device.relevance_threshold <= relevance)
            if active_only:
                query = query.where(Device.is_active.is_(True))
            result = await session.execute(query.order_by(Device.id))
            return list(result.scalars().all())

    async def register_device(self, data: DeviceRegister) -> Tuple[Device, bool]:
        """Create or update a device registration.

        Returns:
            Tuple of (device, created)

        Raises:
            ValidationError: If the device token is malformed
        """
        validate_device_token(data.device_token)
        registered_at = to_naive_utc(data.registered_at)

        fields = {
            "platform": data.platform,
            "relevance_threshold": data.relevance_threshold,
            "is_active": data.is_active,
            "device_id": data.device_info.device_id,
            "model": data.device_info.model,
            "system_version": data.device_info.system_version,
            "app_version": data.device_info.app_version,
            "build_number": data.device_info.build_number,
            "bundle_id": data.device_info.bundle_id,
            "time_zone": data.device_info.time_zone,
            "language": data.device_info.language,
            "categories": list(data.preferences.categories),
            "quiet_hours": data.preferences.quiet_hours,
            "last_updated": registered_at,
        }

        async with self._session_factory() as session:
            device = await self._get(session, data.device_token)
            created = device is None
            if created:
                device = Device(device_token=data.device_token, registered_at=registered_at, **fields)
                session.add(device)
            else:
                for key, value in fields.items():
                    setattr(device, key, value)

            await retry_on_lock(session.commit)
            await session.refresh(device)

        if created:
            logger.info(f"Registered new device: {mask_token(data.device_token)}")
        else:
            logger.info(f"Updated existing device: {mask_token(data.device_token)}")
        return device, created

    async def update_device(self, device_token: str, data: DeviceUpdate) -> Device:
        """Update threshold and active flag; omitted fields keep their value.

        Raises:
            NotFoundError: If the device is not registered
        """
        async with self._session_factory() as session:
            device = await self._get(session, device_token)
            if device is None:
                raise NotFoundError("Device not found")

            if data.relevance_threshold is not None:
                device.relevance_threshold = data.relevance_threshold
            if data.is_active is not None:
                device.is_active = data.is_active
            device.last_updated = to_naive_utc(data.last_updated)

            await retry_on_lock(session.commit)
            await session.refresh(device)

        logger.info(f"Updated device settings: {mask_token(device_token)}")
        return device

    async def ensure_device(
        self,
        device_token: str,
        platform: str,
        device_id: Optional[str] = None,
        app_version: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Tuple[Device, bool]:
        """Return the device, auto-registering it with default settings if unknown.

        Raises:
            ValidationError: If the device token is malformed
        """
        validate_device_token(device_token)

        async with self._session_factory() as session:
            device = await self._get(session, device_token)
            if device is not None:
                return device, False

            now = datetime.utcnow()
            device = Device(
                device_token=device_token,
                platform=platform,
                relevance_threshold=AUTO_REGISTER_THRESHOLD,
                categories=[],
                is_active=True,
                quiet_hours=False,
                device_id=device_id or device_token,
                app_version=app_version,
                model=model,
                registered_at=now,
                last_updated=now,
            )
            session.add(device)
            try:
                await retry_on_lock(session.commit)
            except IntegrityError:
                # Registered concurrently by another request
                await session.rollback()
                existing = await self._get(session, device_token)
                if existing is None:
                    raise
                return existing, False

            await session.refresh(device)

        logger.info(f"Auto-registered device from analytics event: {mask_token(device_token)}")
        return device, True

    async def deactivate_stale_devices(self, days: int = 30) -> int:
        """Soft-deactivate active devices not updated in ``days`` days."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        async with self._session_factory() as session:
            result = await session.execute(
                update(Device)
                .where(Device.last_updated < cutoff, Device.is_active.is_(True))
                .values(is_active=False)
            )
            await retry_on_lock(session.commit)

        logger.info(f"Deactivated {result.rowcount} stale devices")
        return result.rowcount


class SqlReadReceiptStore:
    """Read receipts stored in the ``read_receipts`` table."""

    def __init__(self, session_factory: async_sessionmaker = async_session):
        self._session_factory = session_factory

    async def has_read(self, device_token: str, post_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ReadReceipt.id).where(
                    ReadReceipt.device_token == device_token,
                    ReadReceipt.post_id == post_id,
                )
            )
            return result.first() is not None

    async def read_tokens(self, post_id: str, device_tokens: Sequence[str]) -> Set[str]:
        if not device_tokens:
            return set()
        async with self._session_factory() as session:
            result = await session.execute(
                select(ReadReceipt.device_token).where(
                    ReadReceipt.post_id == post_id,
                    ReadReceipt.device_token.in_(list(device_tokens)),
                )
            )
            return set(result.scalars().all())

    async def mark_read(self, device_token: str, post_id: str, read_at: datetime) -> bool:
        """Insert a receipt unless one exists. Returns True when a row was created."""
        async with self._session_factory() as session:
            existing = await session.execute(
                select(ReadReceipt.id).where(
                    ReadReceipt.device_token == device_token,
                    ReadReceipt.post_id == post_id,
                )
            )
            if existing.first() is not None:
                return False

            session.add(ReadReceipt(
                device_token=device_token,
                post_id=post_id,
                read_at=to_naive_utc(read_at),
            ))
            try:
                await retry_on_lock(session.commit)
            except IntegrityError:
                # Same pair marked concurrently; the unique constraint kept one row
                await session.rollback()
                return False

        logger.info(f"Marked post {post_id} as read for device {mask_token(device_token)}")
        return True

    async def purge_older_than(self, days: int = 30) -> int:
        """Delete receipts created more than ``days`` days ago."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ReadReceipt).where(ReadReceipt.created_at < cutoff)
            )
            await retry_on_lock(session.commit)

        logger.info(f"Cleaned up {result.rowcount} old read receipts")
        return result.rowcount
