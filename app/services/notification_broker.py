"""
In-process pub/sub for Server-Sent Events.

Every open SSE connection owns a bounded queue registered under a channel
name (``customer:{id}`` or ``model:{id}``). Publishing never blocks: a slow
consumer loses its oldest pending event instead of stalling the publisher.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Set

from ..config import settings

logger = logging.getLogger(__name__)

# Queued on shutdown so open streams terminate
_CLOSE = object()


def format_sse(data: Any, event: Optional[str] = None) -> str:
    """Render one SSE frame: optional ``event:`` line, ``data:`` line, blank line."""
    payload = json.dumps(data, separators=(",", ":"), default=str)
    if event:
        return f"event: {event}\ndata: {payload}\n\n"
    return f"data: {payload}\n\n"


def channel_for(role: str, user_id: int) -> str:
    return f"{role}:{user_id}"


class NotificationBroker:
    def __init__(self, queue_size: Optional[int] = None) -> None:
        # channel -> set of subscriber queues
        self.channels: Dict[str, Set[asyncio.Queue]] = {}
        self.queue_size = queue_size or settings.sse_queue_size

    def subscribe(self, channel: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self.channels.setdefault(channel, set()).add(queue)
        logger.debug(f"SSE subscribe channel={channel} listeners={len(self.channels[channel])}")
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        listeners = self.channels.get(channel)
        if not listeners:
            return
        listeners.discard(queue)
        if not listeners:
            self.channels.pop(channel, None)

    def publish(self, channel: str, event: dict) -> int:
        """Deliver an event to every listener on a channel; returns the delivered count"""
        delivered = 0
        for queue in list(self.channels.get(channel, ())):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                logger.warning(f"SSE queue full on {channel}, dropped oldest event")
            queue.put_nowait(event)
            delivered += 1
        return delivered

    def listener_count(self, channel: str) -> int:
        return len(self.channels.get(channel, ()))

    def channel_count(self) -> int:
        return len(self.channels)

    async def shutdown(self) -> None:
        for channel, listeners in list(self.channels.items()):
            for queue in list(listeners):
                if queue.full():
                    try:
                        queue.get_nowait()
                    except asyncio.QueueEmpty:
                        pass
                queue.put_nowait(_CLOSE)
        self.channels.clear()
        logger.info("Notification broker shut down")


broker = NotificationBroker()


async def channel_event_stream(
    channel: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: Optional[float] = None,
    source: Optional[NotificationBroker] = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for one channel until the client goes away."""
    hub = source or broker
    heartbeat = heartbeat_seconds if heartbeat_seconds is not None else settings.sse_heartbeat_seconds
    queue = hub.subscribe(channel)
    try:
        yield format_sse({"type": "connected"})
        while True:
            if await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield format_sse({"type": "heartbeat"})
                continue
            if event is _CLOSE:
                break
            yield format_sse(event)
    finally:
        hub.unsubscribe(channel, queue)
        logger.debug(f"SSE stream closed channel={channel}")
