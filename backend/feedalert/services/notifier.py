"""Notification service - broadcasts to live streams and pushes to devices.

Broadcast rules:
- every post and event goes to all connected stream clients, unfiltered

Push rules:
- posts: only when relevance >= the post push threshold (8.0), then to active
  devices whose own threshold and categories match and who haven't read the post
- events: to devices whose threshold is met by the event's average relevance;
  skipped when no average relevance is supplied
"""
import asyncio
import logging
import time
from typing import List, Optional, Sequence, Union

from ..errors import OrchestrationError
from ..schemas.notification import PostNotification, EventNotification, IngestedPost, Category
from ..utils.text import extract_title, truncate_content, truncate_title
from ..utils.tokens import validate_device_token
from .batch_dispatcher import BatchDispatcher, DispatchReport
from .connection_registry import ConnectionRegistry
from .eligibility import EligibilityResolver
from .push_gateway import PushGateway, PushPayload, BulkResult

logger = logging.getLogger(__name__)

POST_PUSH_THRESHOLD = 8.0
BULK_DELAY_SECONDS = 0.1

TEST_PAYLOAD = PushPayload(
    post_id="test",
    title="Test Notification",
    body="Your push notifications are working correctly!",
    relevance=1.0,
    categories=["test"],
)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _category_slug(category: Union[str, Category]) -> str:
    return category if isinstance(category, str) else category.slug


class NotificationService:
    """Public entry point sequencing broadcast and push for new content."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        resolver: EligibilityResolver,
        dispatcher: BatchDispatcher,
        gateway: PushGateway,
        post_push_threshold: float = POST_PUSH_THRESHOLD,
        bulk_delay_seconds: float = BULK_DELAY_SECONDS,
    ):
        self._registry = registry
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._gateway = gateway
        self._post_push_threshold = post_push_threshold
        self._bulk_delay_seconds = bulk_delay_seconds

    # Broadcast payloads

    def broadcast_post(self, post: PostNotification) -> int:
        return self._registry.broadcast({
            "type": "new_post",
            "post": {
                "id": post.id,
                "title": post.title,
                "relevance": post.relevance,
                "categories": post.categories,
                "publishedAt": post.published_at.isoformat(),
            },
        })

    def broadcast_event(self, event: EventNotification, average_relevance: Optional[float] = None) -> int:
        return self._registry.broadcast({
            "type": "event",
            "subtype": event.status,
            "id": event.id,
            "title": event.title,
            "summary": event.summary,
            "posts_count": event.posts_count,
            "status": event.status,
            "url": event.url,
            "averageRelevance": average_relevance,
        })

    def broadcast_ingested_post(self, post: IngestedPost, categories: Sequence[str]) -> int:
        """Broadcast the full post record for the live feed UI."""
        return self._registry.broadcast({
            "id": post.id,
            "content": post.content,
            "source": post.source,
            "sourceType": "posts",
            "uri": post.uri,
            "relevance": post.relevance,
            "lang": post.lang,
            "hash": post.hash,
            "author": post.author,
            "author_id": post.author_id,
            "author_name": post.author_name,
            "author_handle": post.author_handle,
            "author_avatar": post.author_avatar,
            "media": post.media,
            "linkPreview": post.link_preview,
            "original": post.original,
            "posted_at": post.posted_at.isoformat(),
            "received_at": post.received_at.isoformat(),
            "categories": list(categories),
            "type": "POST",
        })

    # Push paths

    async def _push_post(self, post: PostNotification) -> DispatchReport:
        if post.relevance < self._post_push_threshold:
            logger.info(
                f"Skipping push for post {post.id} - relevance too low "
                f"({post.relevance} < {self._post_push_threshold})"
            )
            return DispatchReport()

        devices = await self._resolver.post_targets(post.relevance, post.categories, post.id)
        if not devices:
            logger.info(f"No devices to push post {post.id} to")
            return DispatchReport()

        payload = PushPayload(
            post_id=post.id,
            title=truncate_title(post.title),
            body=truncate_content(post.body or post.title),
            relevance=post.relevance,
            categories=list(post.categories),
        )
        return await self._dispatcher.dispatch(devices, lambda device: payload, "post", post.id)

    async def _push_event(self, event: EventNotification, average_relevance: Optional[float]) -> DispatchReport:
        if average_relevance is None:
            logger.warning(f"No average relevance for event {event.id} ({event.status}), skipping push")
            return DispatchReport()

        devices = await self._resolver.event_targets(average_relevance)
        if not devices:
            logger.info(f"No devices meet event relevance {average_relevance} for event {event.id}")
            return DispatchReport()

        prefix = "New Event" if event.status == "created" else "Event Updated"
        payload = PushPayload(
            post_id=event.id,
            title=f"{prefix}: {truncate_title(event.title)}",
            body=truncate_content(event.summary or event.title),
            relevance=average_relevance,
            categories=[],
            badge=1,
        )
        return await self._dispatcher.dispatch(devices, lambda device: payload, "event", event.id)

    # Entry points

    async def notify_post(self, post: PostNotification) -> DispatchReport:
        """Broadcast a post, then push it to eligible devices.

        Raises:
            OrchestrationError: If the broadcast or push step failed
        """
        start = time.monotonic()
        try:
            self.broadcast_post(post)
            report = await self._push_post(post)
        except Exception as e:
            duration = _elapsed_ms(start)
            logger.exception(f"Error in post notification process (post_id={post.id}, duration_ms={duration})")
            raise OrchestrationError("post", post.id, duration) from e

        logger.info(f"Post {post.id} notified in {_elapsed_ms(start)}ms ({report.sent} pushes)")
        return report

    async def notify_event(self, event: EventNotification, average_relevance: Optional[float] = None) -> DispatchReport:
        """Broadcast an event, then push it if an average relevance is known.

        Raises:
            OrchestrationError: If the broadcast or push step failed
        """
        start = time.monotonic()
        try:
            self.broadcast_event(event, average_relevance)
            report = await self._push_event(event, average_relevance)
        except Exception as e:
            duration = _elapsed_ms(start)
            logger.exception(
                f"Failed to send event notification (event_id={event.id}, "
                f"status={event.status}, duration_ms={duration})"
            )
            raise OrchestrationError("event", event.id, duration) from e

        logger.info(f"Event {event.id} ({event.status}) notified in {_elapsed_ms(start)}ms ({report.sent} pushes)")
        return report

    async def notify_ingested_post(
        self,
        post: IngestedPost,
        categories: Sequence[Union[str, Category]],
    ) -> DispatchReport:
        """Broadcast a freshly ingested post with full metadata, then push it.

        Raises:
            OrchestrationError: If the broadcast or push step failed
        """
        start = time.monotonic()
        slugs = [_category_slug(category) for category in categories]
        try:
            self.broadcast_ingested_post(post, slugs)
            report = await self._push_post(PostNotification(
                id=post.id,
                title=extract_title(post.content),
                body=post.content,
                relevance=post.relevance,
                categories=slugs,
                published_at=post.posted_at,
                url=post.uri,
            ))
        except Exception as e:
            duration = _elapsed_ms(start)
            logger.exception(
                f"Failed to send notifications for new post (post_id={post.id}, "
                f"source={post.source}, relevance={post.relevance}, duration_ms={duration})"
            )
            raise OrchestrationError("post", post.id, duration) from e

        return report

    async def send_test_notification(self, device_token: str) -> BulkResult:
        """Send the fixed test payload straight to one device.

        Raises:
            ValidationError: If the device token is malformed
        """
        validate_device_token(device_token)
        return await self._gateway.send_to_tokens([device_token], TEST_PAYLOAD)

    async def send_bulk(self, posts: List[PostNotification]):
        """Notify posts one after another; a failing post never stops the rest."""
        for index, post in enumerate(posts):
            if index and self._bulk_delay_seconds:
                await asyncio.sleep(self._bulk_delay_seconds)
            try:
                await self.notify_post(post)
            except OrchestrationError as e:
                logger.error(f"Error sending notification for post {post.id}: {e}")
