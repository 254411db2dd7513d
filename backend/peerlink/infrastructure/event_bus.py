"""Event Bus — in-process fan-out of published events to any number of subscribers.

Invariants:
    - publish() never blocks and never raises — the publisher is often the coordinator loop
    - Each subscriber gets its own bounded queue; a slow subscriber drops its OLDEST events,
      never anyone else's
    - Event shape is {"type": str, "data": dict} (same envelope the SSE route streams)

Design Decisions:
    - asyncio.Queue per subscriber over callbacks: consumers pull at their own pace and
      publishers never run foreign code
    - subscribe() is an async context manager so disconnecting SSE clients always unregister
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class EventBus:
    """Publish/subscribe hub for network events."""

    def __init__(self, max_queue_size: int = 256):
        self._max_queue_size = max_queue_size
        self._subscribers: set[asyncio.Queue] = set()
        self.published_count = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event_type: str, data: dict) -> None:
        """Fan an event out to every subscriber queue."""
        event = {"type": event_type, "data": data}
        self.published_count += 1
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
                logger.warning(
                    "Subscriber queue full, dropped oldest event",
                    extra={"event_type": event_type},
                )
            queue.put_nowait(event)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue]:
        """Register a subscriber queue for the duration of the context."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
