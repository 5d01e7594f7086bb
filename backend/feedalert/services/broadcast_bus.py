"""Shared fan-out bus feeding every live stream connection."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Envelope:
    """A published message, optionally addressed to a single client."""
    data: str
    client_id: Optional[str] = None


class Subscription:
    """One client's receive end of the bus.

    Messages land in ``outbox``; the keepalive producer of the owning
    connection writes into the same queue. ``CLOSED`` is enqueued when the
    subscription ends.
    """

    CLOSED = object()

    def __init__(self, client_id: str):
        self.client_id = client_id
        self.outbox: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def accepts(self, envelope: Envelope) -> bool:
        return envelope.client_id is None or envelope.client_id == self.client_id

    def deliver(self, envelope: Envelope):
        if self._closed or not self.accepts(envelope):
            return
        self.outbox.put_nowait(envelope.data)

    def put(self, data: str):
        """Enqueue a message produced locally for this client (e.g. a ping)."""
        if not self._closed:
            self.outbox.put_nowait(data)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.outbox.put_nowait(self.CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed


class BroadcastBus:
    """Single publish point with one filtered subscriber per stream client.

    Publishing never blocks: each subscriber owns an unbounded queue, so a
    slow or cancelled client cannot stall the others.
    """

    def __init__(self):
        self._subscribers: Dict[str, Subscription] = {}
        self._closed = False

    def subscribe(self, client_id: str) -> Subscription:
        if self._closed:
            raise RuntimeError("Broadcast bus is closed")
        subscription = Subscription(client_id)
        self._subscribers[client_id] = subscription
        return subscription

    def unsubscribe(self, client_id: str) -> Optional[Subscription]:
        """Detach and close a subscriber. Returns None if it was not attached."""
        subscription = self._subscribers.pop(client_id, None)
        if subscription is not None:
            subscription.close()
        return subscription

    def publish(self, data: str, client_id: Optional[str] = None) -> int:
        """Offer a message to every subscriber; returns how many accepted it."""
        if self._closed:
            logger.debug("Broadcast bus closed, dropping message")
            return 0

        envelope = Envelope(data=data, client_id=client_id)
        delivered = 0
        # Copy so subscribers detaching mid-publish don't break iteration
        for subscription in list(self._subscribers.values()):
            if subscription.accepts(envelope):
                subscription.deliver(envelope)
                delivered += 1
        return delivered

    def close(self):
        """Close every subscription and refuse further publishing."""
        if self._closed:
            return
        self._closed = True
        for client_id in list(self._subscribers):
            self.unsubscribe(client_id)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
