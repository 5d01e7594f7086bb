"""Push notification gateway using APNs for iOS."""
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Sequence

from aioapns import APNs, NotificationRequest, PushType

from ..errors import DeliveryError
from ..utils.tokens import mask_token

logger = logging.getLogger(__name__)

# Every push expires one hour after it is handed to APNs
PUSH_EXPIRY_SECONDS = 3600


@dataclass
class PushConfig:
    """APNs configuration."""
    enabled: bool = False
    key_path: str = ""  # Path to .p8 key file
    key_id: str = ""
    team_id: str = ""
    bundle_id: str = ""
    use_sandbox: bool = True  # Use sandbox for development


@dataclass
class PushPayload:
    """Content of a single push notification."""
    post_id: str
    title: str
    body: str
    relevance: float
    categories: List[str] = field(default_factory=list)
    badge: Optional[int] = None

    def to_apns(self) -> dict:
        """Build the APNs JSON payload: alert in ``aps``, post data alongside."""
        return {
            "aps": {
                "alert": {"title": self.title, "body": self.body},
                "badge": self.badge or 1,
                "sound": "default",
            },
            "postId": self.post_id,
            "relevance": self.relevance,
            "categories": list(self.categories),
            "category": "POST_NOTIFICATION",
        }


@dataclass
class BulkResult:
    """Outcome of sending one payload to several tokens."""
    success: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class PushGateway:
    """Sends push notifications to single devices via APNs."""

    def __init__(self):
        self._client: Optional[APNs] = None
        self._config: Optional[PushConfig] = None

    def configure(self, config: PushConfig):
        """Configure the APNs client."""
        self._config = config
        self._client = None  # Reset client to force reconnection

        if not config.enabled:
            logger.info("Push notifications are disabled")
            return

        if not all([config.key_path, config.key_id, config.team_id, config.bundle_id]):
            logger.warning("Push notifications enabled but APNs not fully configured")
            return

        try:
            self._client = APNs(
                key=config.key_path,
                key_id=config.key_id,
                team_id=config.team_id,
                topic=config.bundle_id,
                use_sandbox=config.use_sandbox,
            )
            logger.info(f"APNs client configured (sandbox={config.use_sandbox})")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to configure APNs client: {e}")
            self._client = None

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def send(self, device_token: str, payload: PushPayload):
        """Send a push notification to a single device.

        Raises:
            DeliveryError: APNs is not configured, rejected the token, or the
                request failed in transit.
        """
        if self._client is None:
            raise DeliveryError(device_token, "APNs client not configured")

        request = NotificationRequest(
            device_token=device_token,
            message=payload.to_apns(),
            time_to_live=PUSH_EXPIRY_SECONDS,
            push_type=PushType.ALERT,
        )

        try:
            response = await self._client.send_notification(request)
        except Exception as e:
            raise DeliveryError(device_token, f"APNs request failed: {e}") from e

        if not response.is_successful:
            raise DeliveryError(
                device_token,
                response.description or "Unknown error",
                status=str(response.status),
            )
        logger.info(f"Push notification sent to {mask_token(device_token)}")

    async def send_to_tokens(self, device_tokens: Sequence[str], payload: PushPayload) -> BulkResult:
        """Send one payload to several tokens, collecting per-token failures."""
        result = BulkResult()
        for device_token in device_tokens:
            try:
                await self.send(device_token, payload)
                result.success += 1
            except DeliveryError as e:
                result.failed += 1
                result.errors.append(f"{mask_token(device_token)}: {e.reason}")
                logger.warning(f"Push notification failed: {e.reason} (token: {mask_token(device_token)})")

        logger.info(f"Bulk push results: {result.success} success, {result.failed} failed")
        return result

    def shutdown(self):
        """Drop the APNs client; later sends fail with DeliveryError."""
        if self._client is not None:
            self._client = None
            logger.info("APNs client shut down")
