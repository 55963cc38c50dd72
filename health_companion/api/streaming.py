"""
Server-Sent Events for live snapshots.

Database subscriptions call back on a background thread; each snapshot is
handed to the event loop and sent as one ``snapshot`` event. Only the
newest pending snapshot is sent, since every snapshot replaces the one
before it.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Callable, TypeVar

from fastapi import Request

from health_companion.core.signals import Unsubscribe
from health_companion.utils.logger import get_logger

logger = get_logger("streaming")

T = TypeVar("T")


def emit_sse(event: str, payload: Any) -> str:
    """Format one SSE frame."""
    data = json.dumps(payload, ensure_ascii=False, default=str)
    return f"event: {event}\ndata: {data}\n\n"


async def snapshot_events(
    request: Request,
    subscribe: Callable[[Callable[[T], None]], Unsubscribe],
    encode: Callable[[T], Any],
    keepalive_seconds: float,
) -> AsyncIterator[str]:
    """
    Stream a subscription until the client disconnects.

    Args:
        request: The streaming request, polled for disconnects
        subscribe: Opens the subscription and returns its unsubscribe
        encode: Snapshot to JSON-serializable payload
        keepalive_seconds: Idle time before a keep-alive comment
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    unsubscribe = subscribe(
        lambda snapshot: loop.call_soon_threadsafe(queue.put_nowait, snapshot)
    )
    try:
        while not await request.is_disconnected():
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue

            while not queue.empty():
                snapshot = queue.get_nowait()

            yield emit_sse("snapshot", encode(snapshot))
    finally:
        unsubscribe()
        logger.info("Subscription closed", path=request.url.path)
