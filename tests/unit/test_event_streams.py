"""Unit tests for the SSE broker and the stream generators."""

import asyncio
import json

import pytest

from app.services.notification_broker import NotificationBroker, channel_event_stream, channel_for, format_sse
from app.services.subscription_events import SubscriptionEventHub, subscription_event_stream


def _parse(frame: str) -> dict:
    data_line = [line for line in frame.splitlines() if line.startswith("data: ")][0]
    return json.loads(data_line[len("data: "):])


async def _never_disconnected() -> bool:
    return False


def test_format_sse_with_and_without_event():
    assert format_sse({"a": 1}) == 'data: {"a":1}\n\n'
    assert format_sse({"a": 1}, event="ping") == 'event: ping\ndata: {"a":1}\n\n'


def test_channel_names():
    assert channel_for("customer", 7) == "customer:7"
    assert channel_for("model", 3) == "model:3"


@pytest.mark.asyncio
async def test_publish_reaches_only_the_target_channel():
    broker = NotificationBroker(queue_size=10)
    mine = broker.subscribe("customer:1")
    other = broker.subscribe("customer:2")

    delivered = broker.publish("customer:1", {"type": "booking_confirmed"})

    assert delivered == 1
    assert mine.get_nowait() == {"type": "booking_confirmed"}
    assert other.empty()


@pytest.mark.asyncio
async def test_publish_fans_out_to_every_tab():
    broker = NotificationBroker(queue_size=10)
    first = broker.subscribe("model:5")
    second = broker.subscribe("model:5")

    assert broker.publish("model:5", {"id": 1}) == 2
    assert first.get_nowait() == {"id": 1}
    assert second.get_nowait() == {"id": 1}
    assert broker.listener_count("model:5") == 2


@pytest.mark.asyncio
async def test_full_queue_drops_oldest_event():
    broker = NotificationBroker(queue_size=2)
    queue = broker.subscribe("customer:1")
    for i in range(3):
        broker.publish("customer:1", {"n": i})

    assert [queue.get_nowait()["n"] for _ in range(2)] == [1, 2]


@pytest.mark.asyncio
async def test_unsubscribe_forgets_empty_channels():
    broker = NotificationBroker(queue_size=2)
    queue = broker.subscribe("customer:1")
    assert broker.channel_count() == 1
    broker.unsubscribe("customer:1", queue)
    assert broker.channel_count() == 0
    assert broker.publish("customer:1", {"n": 1}) == 0


@pytest.mark.asyncio
async def test_channel_stream_sends_connected_events_and_heartbeat():
    broker = NotificationBroker(queue_size=10)
    stream = channel_event_stream("customer:1", _never_disconnected, heartbeat_seconds=0.05, source=broker)

    assert _parse(await stream.__anext__()) == {"type": "connected"}
    broker.publish("customer:1", {"type": "booking_confirmed", "id": 9})
    assert _parse(await stream.__anext__())["id"] == 9
    assert _parse(await stream.__anext__()) == {"type": "heartbeat"}

    await stream.aclose()
    assert broker.listener_count("customer:1") == 0


@pytest.mark.asyncio
async def test_channel_stream_ends_on_disconnect_and_shutdown():
    broker = NotificationBroker(queue_size=10)
    disconnected = False

    async def is_disconnected():
        return disconnected

    stream = channel_event_stream("model:1", is_disconnected, heartbeat_seconds=0.05, source=broker)
    await stream.__anext__()
    disconnected = True
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert broker.channel_count() == 0

    stream = channel_event_stream("model:2", _never_disconnected, heartbeat_seconds=5, source=broker)
    await stream.__anext__()
    pending = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)
    await broker.shutdown()
    with pytest.raises(StopAsyncIteration):
        await pending


@pytest.mark.asyncio
async def test_subscription_stream_delivers_activation_then_closes():
    hub = SubscriptionEventHub()
    stream = subscription_event_stream(4, _never_disconnected, heartbeat_seconds=5, timeout_seconds=5, source=hub)

    assert _parse(await stream.__anext__()) == {"type": "connected", "customer_id": 4}
    assert hub.is_connected(4)
    assert hub.send_subscription_event(4, {"subscription_id": 1, "status": "active"})

    frame = await stream.__anext__()
    assert frame.startswith("event: subscription-activated\n")
    assert _parse(frame) == {"subscription_id": 1, "status": "active"}
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert not hub.is_connected(4)
    assert hub.send_subscription_event(4, {"subscription_id": 1}) is False


@pytest.mark.asyncio
async def test_subscription_stream_times_out():
    hub = SubscriptionEventHub()
    stream = subscription_event_stream(4, _never_disconnected, heartbeat_seconds=0.02,
                                       timeout_seconds=0.05, source=hub)
    frames = [_parse(frame) async for frame in stream]

    assert frames[0]["type"] == "connected"
    assert frames[-1] == {"type": "timeout"}
    assert not hub.is_connected(4)


@pytest.mark.asyncio
async def test_new_subscription_stream_replaces_old_one():
    hub = SubscriptionEventHub()
    first = subscription_event_stream(4, _never_disconnected, heartbeat_seconds=5, timeout_seconds=5, source=hub)
    await first.__anext__()
    second = subscription_event_stream(4, _never_disconnected, heartbeat_seconds=5, timeout_seconds=5, source=hub)
    await second.__anext__()

    with pytest.raises(StopAsyncIteration):
        await first.__anext__()
    # The replaced stream must not unregister the new connection
    assert hub.is_connected(4)
    await second.aclose()
    assert not hub.is_connected(4)
