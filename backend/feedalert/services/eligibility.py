"""Eligibility resolver - decides which devices get a push for a post or event.

Post eligibility:
- device is active
- device threshold <= post relevance (inclusive)
- device categories empty (all categories) or overlapping the post's categories
- device has not already read the post

Event eligibility:
- device threshold <= the event's average relevance (inclusive)
- optionally restricted to active devices
- no category or read-state filtering
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence, Set

logger = logging.getLogger(__name__)


class TargetDevice(Protocol):
    """The device attributes eligibility depends on."""
    device_token: str
    relevance_threshold: float
    categories: Optional[List[str]]
    is_active: bool


class DeviceDirectory(Protocol):
    async def find_eligible_devices(self, relevance: float, active_only: bool = True) -> List[TargetDevice]:
        """Devices whose threshold is at or below ``relevance``."""
        ...


class ReadReceiptStore(Protocol):
    async def has_read(self, device_token: str, post_id: str) -> bool:
        ...

    async def read_tokens(self, post_id: str, device_tokens: Sequence[str]) -> Set[str]:
        """Subset of ``device_tokens`` that already read ``post_id``."""
        ...

    async def mark_read(self, device_token: str, post_id: str, read_at: datetime) -> bool:
        """Insert a receipt if absent. Returns True when a row was created."""
        ...


def threshold_met(device: TargetDevice, relevance: float) -> bool:
    return device.relevance_threshold <= relevance


def categories_match(device: TargetDevice, categories: Iterable[str]) -> bool:
    """An empty device category list subscribes to every category."""
    if not device.categories:
        return True
    return not set(device.categories).isdisjoint(categories)


class EligibilityResolver:
    """Computes push-target device sets. Read-only."""

    def __init__(
        self,
        directory: DeviceDirectory,
        receipts: ReadReceiptStore,
        event_active_only: bool = True,
    ):
        self._directory = directory
        self._receipts = receipts
        self._event_active_only = event_active_only

    async def post_targets(
        self,
        relevance: float,
        categories: Sequence[str],
        post_id: str,
    ) -> List[TargetDevice]:
        """Active, matching devices that have not read ``post_id`` yet."""
        candidates = [
            device
            for device in await self._directory.find_eligible_devices(relevance, active_only=True)
            if device.is_active
            and threshold_met(device, relevance)
            and categories_match(device, categories)
        ]
        logger.info(
            f"Found {len(candidates)} devices eligible for post {post_id} "
            f"(relevance: {relevance}, categories: {', '.join(categories)})"
        )
        if not candidates:
            return []

        read = await self._receipts.read_tokens(post_id, [d.device_token for d in candidates])
        unread = [device for device in candidates if device.device_token not in read]
        logger.info(f"Found {len(unread)} devices that haven't read post {post_id}")
        return unread

    async def event_targets(self, average_relevance: Optional[float]) -> List[TargetDevice]:
        """Devices whose threshold is met by the event's average relevance."""
        if average_relevance is None:
            return []

        devices = await self._directory.find_eligible_devices(
            average_relevance, active_only=self._event_active_only
        )
        targets = [
            device
            for device in devices
            if threshold_met(device, average_relevance)
            and (device.is_active or not self._event_active_only)
        ]
        logger.info(
            f"Found {len(targets)} devices eligible for event "
            f"(average relevance: {average_relevance})"
        )
        return targets
