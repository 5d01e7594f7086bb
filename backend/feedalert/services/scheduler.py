"""Scheduler service - periodic device directory housekeeping.

Jobs:
- purge read receipts older than the retention window (hourly)
- soft-deactivate devices not updated within the retention window (daily)
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from .devices import DeviceService

logger = logging.getLogger(__name__)


class SchedulerService:
    """Runs maintenance jobs on the application's event loop."""

    def __init__(self, device_service: DeviceService):
        self._device_service = device_service
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self._cleanup_read_receipts,
            trigger=IntervalTrigger(hours=1),
            id="cleanup_read_receipts",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.add_job(
            self._deactivate_stale_devices,
            trigger=IntervalTrigger(days=1),
            id="deactivate_stale_devices",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def _cleanup_read_receipts(self):
        try:
            await self._device_service.cleanup_read_receipts()
        except SQLAlchemyError as e:
            logger.error(f"Read receipt cleanup failed: {e}")

    async def _deactivate_stale_devices(self):
        try:
            await self._device_service.deactivate_stale_devices()
        except SQLAlchemyError as e:
            logger.error(f"Stale device deactivation failed: {e}")
