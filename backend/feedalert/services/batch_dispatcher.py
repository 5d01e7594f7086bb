"""Batched push delivery.

Devices are split into fixed-size batches processed strictly in order, and
within a batch the gateway is called once per device, one at a time. This
keeps the outbound request rate low enough for APNs without explicit rate
limiting.

A delivery failure for one device is logged and counted; it never stops the
batch. Any other error inside a batch is logged and the next batch runs.
Nothing is retried.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from ..errors import DeliveryError
from ..utils.tokens import mask_token
from .eligibility import TargetDevice
from .push_gateway import PushGateway, PushPayload

logger = logging.getLogger(__name__)

BATCH_SIZE = 100

PayloadBuilder = Callable[[TargetDevice], PushPayload]


@dataclass
class DispatchReport:
    """Aggregate outcome of one dispatch call, for logging only."""
    batches: int = 0
    sent: int = 0
    failed: int = 0
    failed_batches: int = 0
    errors: List[str] = field(default_factory=list)


def split_batches(devices: Sequence[TargetDevice], batch_size: int = BATCH_SIZE) -> List[Sequence[TargetDevice]]:
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [devices[i:i + batch_size] for i in range(0, len(devices), batch_size)]


class BatchDispatcher:
    """Drives the push gateway over a device list, batch by batch."""

    def __init__(self, gateway: PushGateway, batch_size: int = BATCH_SIZE):
        self._gateway = gateway
        self._batch_size = batch_size

    async def dispatch(
        self,
        devices: Sequence[TargetDevice],
        build_payload: PayloadBuilder,
        kind: str,
        content_id: str,
    ) -> DispatchReport:
        """Send a per-device payload to every device.

        Args:
            devices: Push targets, already filtered for eligibility
            build_payload: Builds the payload for one device
            kind: "post" or "event", for log context
            content_id: Id of the post or event, for log context
        """
        report = DispatchReport()

        for batch in split_batches(list(devices), self._batch_size):
            report.batches += 1
            try:
                for device in batch:
                    payload = build_payload(device)
                    try:
                        await self._gateway.send(device.device_token, payload)
                        report.sent += 1
                    except DeliveryError as e:
                        report.failed += 1
                        report.errors.append(f"{mask_token(device.device_token)}: {e.reason}")
                        logger.warning(
                            f"Push failed for {kind} {content_id}: {e.reason} "
                            f"(token: {mask_token(device.device_token)})"
                        )

                logger.info(f"{kind} notification batch sent ({kind}_id={content_id}, batch_size={len(batch)})")
            except Exception:
                report.failed_batches += 1
                logger.exception(
                    f"Failed to send {kind} notification batch ({kind}_id={content_id}, batch_size={len(batch)})"
                )

        logger.info(
            f"{kind} {content_id} push dispatch finished: {report.sent} sent, "
            f"{report.failed} failed, {report.batches} batches"
        )
        return report
