"""Live stream connection registry for real-time feed updates."""
import asyncio
import json
import logging
import uuid
import weakref
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Any, List, Optional, Tuple

from .broadcast_bus import BroadcastBus, Subscription

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 25.0


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(message: Dict[str, Any]) -> str:
    return json.dumps(message, default=str)


class ClientStream:
    """Message stream of one registered client.

    The client is released exactly once, on whichever exit comes first. A
    stream closed before its first message still releases it, and so does
    dropping an unclosed stream.
    """

    def __init__(self, registry: "ConnectionRegistry", client_id: str, subscription: Subscription):
        self.client_id = client_id
        self._release = weakref.finalize(self, registry._cleanup_client, client_id)
        self._release.atexit = False
        self._messages = registry._stream(client_id, subscription, self._release)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        return await self._messages.__anext__()

    async def aclose(self):
        try:
            await self._messages.aclose()
        finally:
            self._release()

    @property
    def released(self) -> bool:
        return not self._release.alive


class ConnectionRegistry:
    """Tracks streaming clients and routes bus messages to them.

    Each call to :meth:`connect` registers a client and hands back its
    :class:`ClientStream`, which deregisters the client exactly once on
    every exit path.
    """

    def __init__(self, bus: Optional[BroadcastBus] = None, keepalive_seconds: float = KEEPALIVE_SECONDS):
        self._bus = bus or BroadcastBus()
        self._keepalive_seconds = keepalive_seconds
        self._clients: Dict[str, datetime] = {}

    def _generate_client_id(self) -> str:
        while True:
            client_id = uuid.uuid4().hex[:12]
            if client_id not in self._clients:
                return client_id

    def connect(self) -> Tuple[str, ClientStream]:
        """Register a new client and return its id and message stream."""
        client_id = self._generate_client_id()
        subscription = self._bus.subscribe(client_id)
        self._clients[client_id] = datetime.now(timezone.utc)
        logger.info(f"Client connected: {client_id}. Total clients: {len(self._clients)}")
        return client_id, ClientStream(self, client_id, subscription)

    async def _stream(
        self,
        client_id: str,
        subscription: Subscription,
        release: weakref.finalize,
    ) -> AsyncIterator[str]:
        keepalive: Optional[asyncio.Task] = None
        try:
            yield _dumps({"type": "connected", "clientId": client_id, "timestamp": _now()})
            keepalive = asyncio.create_task(self._keepalive(client_id, subscription))
            while True:
                data = await subscription.outbox.get()
                if data is Subscription.CLOSED:
                    break
                yield data
        finally:
            if keepalive is not None:
                keepalive.cancel()
            release()

    async def _keepalive(self, client_id: str, subscription: Subscription):
        while not subscription.closed:
            await asyncio.sleep(self._keepalive_seconds)
            subscription.put(_dumps({"type": "ping", "timestamp": _now(), "clientId": client_id}))

    def _cleanup_client(self, client_id: str):
        """Release a client whose stream was torn down."""
        self._bus.unsubscribe(client_id)
        if self._clients.pop(client_id, None) is not None:
            logger.info(f"Client cleaned up: {client_id}. Total clients: {len(self._clients)}")
        else:
            logger.debug(f"Client {client_id} already released before cleanup")

    def disconnect(self, client_id: str):
        """Explicitly deregister a client and end its stream."""
        if self._clients.pop(client_id, None) is None:
            logger.info(f"Client not found for disconnection: {client_id}")
            return
        self._bus.unsubscribe(client_id)
        logger.info(f"Client disconnected: {client_id}. Total clients: {len(self._clients)}")

    def send_to_client(self, client_id: str, message: str):
        """Deliver a raw message to a single registered client."""
        if client_id not in self._clients:
            logger.error(f"Client {client_id} not found")
            return
        self._bus.publish(message, client_id=client_id)

    def broadcast(self, message: Dict[str, Any]) -> int:
        """Stamp a message and deliver it to every registered client."""
        return self._bus.publish(_dumps({**message, "timestamp": _now()}))

    def stats(self) -> Dict[str, Any]:
        client_ids = list(self._clients)
        return {
            "clientCount": len(client_ids),
            "clientIds": client_ids,
            "timestamp": _now(),
        }

    def healthy(self) -> bool:
        return not self._bus.closed

    def shutdown(self):
        """Disconnect every client and close the bus for good."""
        client_ids: List[str] = list(self._clients)
        logger.info(f"Shutting down stream registry, disconnecting {len(client_ids)} clients")
        for client_id in client_ids:
            self.disconnect(client_id)
        self._bus.close()

    @property
    def connection_count(self) -> int:
        """Return the number of registered clients."""
        return len(self._clients)

    def is_registered(self, client_id: str) -> bool:
        return client_id in self._clients
