"""
One-shot SSE channel that tells a waiting customer their subscription is active.

Each customer holds at most one connection; a new connection replaces the old
one. The stream ends after the activation event or after a timeout.
"""
import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

from ..config import settings
from .notification_broker import format_sse

logger = logging.getLogger(__name__)

_REPLACED = object()


class SubscriptionEventHub:
    def __init__(self) -> None:
        # customer_id -> queue of the single open connection
        self.connections: Dict[int, asyncio.Queue] = {}

    def connect(self, customer_id: int) -> asyncio.Queue:
        previous = self.connections.get(customer_id)
        if previous is not None:
            previous.put_nowait(_REPLACED)
            logger.info(f"Replacing subscription event stream for customer {customer_id}")
        queue: asyncio.Queue = asyncio.Queue()
        self.connections[customer_id] = queue
        return queue

    def disconnect(self, customer_id: int, queue: asyncio.Queue) -> None:
        if self.connections.get(customer_id) is queue:
            del self.connections[customer_id]

    def is_connected(self, customer_id: int) -> bool:
        return customer_id in self.connections

    def send_subscription_event(self, customer_id: int, data: dict) -> bool:
        """Deliver an activation event; returns False when the customer is not connected"""
        queue = self.connections.get(customer_id)
        if queue is None:
            return False
        queue.put_nowait(data)
        return True

    def shutdown(self) -> None:
        for queue in self.connections.values():
            queue.put_nowait(_REPLACED)
        self.connections.clear()


hub = SubscriptionEventHub()


async def subscription_event_stream(
    customer_id: int,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: Optional[float] = None,
    timeout_seconds: Optional[float] = None,
    source: Optional[SubscriptionEventHub] = None,
) -> AsyncIterator[str]:
    events = source or hub
    heartbeat = heartbeat_seconds if heartbeat_seconds is not None else settings.sse_heartbeat_seconds
    timeout = timeout_seconds if timeout_seconds is not None else settings.subscription_sse_timeout_seconds
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    queue = events.connect(customer_id)
    try:
        yield format_sse({"type": "connected", "customer_id": customer_id})
        while True:
            if await is_disconnected():
                break
            remaining = deadline - loop.time()
            if remaining <= 0:
                yield format_sse({"type": "timeout"})
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=min(heartbeat, remaining))
            except asyncio.TimeoutError:
                if deadline - loop.time() > 0:
                    yield format_sse({"type": "heartbeat"})
                continue
            if event is _REPLACED:
                break
            yield format_sse(event, event="subscription-activated")
            break
    finally:
        events.disconnect(customer_id, queue)
