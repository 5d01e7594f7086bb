"""Live notification stream (Server-Sent Events) endpoints."""
import logging
from contextlib import aclosing

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ..dependencies import get_registry
from ..schemas.notification import StreamHealth
from ..services.connection_registry import ConnectionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable proxy buffering (nginx)
}


@router.get("")
async def stream_notifications(registry: ConnectionRegistry = Depends(get_registry)):
    """Open a live notification stream.

    The first event is ``connected`` with the client id; broadcasts and a
    ``ping`` keepalive follow. Closing the connection releases the client.
    """
    if not registry.healthy():
        raise HTTPException(status_code=503, detail="Notification stream is shutting down")

    client_id, messages = registry.connect()

    async def event_stream():
        async with aclosing(messages):
            async for data in messages:
                yield f"data: {data}\n\n"
        logger.debug(f"Stream closed for client {client_id}")

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/health", response_model=StreamHealth)
async def stream_health(registry: ConnectionRegistry = Depends(get_registry)):
    """Get stream health and connected client statistics."""
    return StreamHealth(healthy=registry.healthy(), **registry.stats())
