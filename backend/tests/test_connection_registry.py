import asyncio
import gc
import json

import pytest

from feedalert.services.broadcast_bus import BroadcastBus
from feedalert.services.connection_registry import ConnectionRegistry


async def next_message(stream, timeout: float = 1.0) -> dict:
    return json.loads(await asyncio.wait_for(stream.__anext__(), timeout))


@pytest.mark.asyncio
async def test_first_message_is_connected_event_with_own_id():
    registry = ConnectionRegistry()
    client_id, stream = registry.connect()

    message = await next_message(stream)

    assert message["type"] == "connected"
    assert message["clientId"] == client_id
    assert "timestamp" in message
    await stream.aclose()


@pytest.mark.asyncio
async def test_keepalive_ping_is_emitted_when_idle():
    registry = ConnectionRegistry(keepalive_seconds=0.05)
    client_id, stream = registry.connect()
    await next_message(stream)

    ping = await next_message(stream)

    assert ping["type"] == "ping"
    assert ping["clientId"] == client_id
    await stream.aclose()


@pytest.mark.asyncio
async def test_broadcast_is_stamped_and_reaches_all_clients():
    registry = ConnectionRegistry()
    _, first = registry.connect()
    _, second = registry.connect()
    await next_message(first)
    await next_message(second)

    delivered = registry.broadcast({"type": "new_post", "post": {"id": "p1"}})

    assert delivered == 2
    for stream in (first, second):
        message = await next_message(stream)
        assert message["type"] == "new_post"
        assert message["post"] == {"id": "p1"}
        assert "timestamp" in message
        await stream.aclose()


@pytest.mark.asyncio
async def test_broadcast_does_not_reach_clients_registered_afterwards():
    registry = ConnectionRegistry()
    _, early = registry.connect()
    registry.broadcast({"type": "first"})
    _, late = registry.connect()
    registry.broadcast({"type": "second"})

    await next_message(early)
    assert (await next_message(early))["type"] == "first"
    assert (await next_message(early))["type"] == "second"

    await next_message(late)
    assert (await next_message(late))["type"] == "second"

    await early.aclose()
    await late.aclose()


@pytest.mark.asyncio
async def test_send_to_client_reaches_only_that_client():
    registry = ConnectionRegistry()
    target_id, target = registry.connect()
    _, other = registry.connect()
    await next_message(target)
    await next_message(other)

    registry.send_to_client(target_id, json.dumps({"type": "direct"}))
    registry.broadcast({"type": "everyone"})

    assert (await next_message(target))["type"] == "direct"
    assert (await next_message(target))["type"] == "everyone"
    assert (await next_message(other))["type"] == "everyone"
    await target.aclose()
    await other.aclose()


def test_send_to_unknown_client_is_logged_no_op(caplog):
    registry = ConnectionRegistry()

    registry.send_to_client("missing", "{}")

    assert "Client missing not found" in caplog.text


@pytest.mark.asyncio
async def test_closing_stream_deregisters_client_once():
    registry = ConnectionRegistry()
    client_id, stream = registry.connect()
    await next_message(stream)
    assert registry.stats()["clientIds"] == [client_id]

    await stream.aclose()

    assert registry.connection_count == 0
    assert not registry.is_registered(client_id)


@pytest.mark.asyncio
async def test_cancelled_consumer_releases_client():
    registry = ConnectionRegistry()
    client_id, stream = registry.connect()

    async def consume():
        async for _ in stream:
            pass

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not registry.is_registered(client_id)


@pytest.mark.asyncio
async def test_disconnect_ends_stream_without_double_cleanup(caplog):
    registry = ConnectionRegistry()
    client_id, stream = registry.connect()
    await next_message(stream)

    registry.disconnect(client_id)

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(stream.__anext__(), 1.0)
    assert registry.connection_count == 0
    assert caplog.text.count(f"Client cleaned up: {client_id}") == 0


@pytest.mark.asyncio
async def test_stats_and_health():
    registry = ConnectionRegistry()
    first_id, first = registry.connect()
    second_id, second = registry.connect()

    stats = registry.stats()

    assert stats["clientCount"] == 2
    assert set(stats["clientIds"]) == {first_id, second_id}
    assert registry.healthy()
    await first.aclose()
    await second.aclose()


@pytest.mark.asyncio
async def test_shutdown_disconnects_everyone_and_closes_bus():
    bus = BroadcastBus()
    registry = ConnectionRegistry(bus)
    client_id, stream = registry.connect()
    await next_message(stream)

    registry.shutdown()

    assert registry.connection_count == 0
    assert not registry.healthy()
    assert registry.broadcast({"type": "late"}) == 0
    registry.send_to_client(client_id, "{}")
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(stream.__anext__(), 1.0)


@pytest.mark.asyncio
async def test_client_ids_are_unique():
    registry = ConnectionRegistry()
    connections = [registry.connect() for _ in range(50)]

    assert len({client_id for client_id, _ in connections}) == 50
    for _, stream in connections:
        await stream.aclose()
    assert registry.connection_count == 0


@pytest.mark.asyncio
async def test_closing_unstarted_stream_releases_client():
    bus = BroadcastBus()
    registry = ConnectionRegistry(bus)
    client_id, stream = registry.connect()

    await stream.aclose()

    assert registry.connection_count == 0
    assert not registry.is_registered(client_id)
    assert bus.subscriber_count == 0
    assert stream.released


@pytest.mark.asyncio
async def test_dropped_stream_releases_client():
    bus = BroadcastBus()
    registry = ConnectionRegistry(bus)
    registry.connect()

    gc.collect()

    assert registry.connection_count == 0
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_client_is_cleaned_up_once_across_repeated_closes(caplog):
    caplog.set_level("DEBUG")
    registry = ConnectionRegistry()
    client_id, stream = registry.connect()
    await next_message(stream)

    await stream.aclose()
    await stream.aclose()

    assert caplog.text.count(f"Client cleaned up: {client_id}") == 1
    assert f"Client {client_id} already released" not in caplog.text
