"""
Live Update Broadcaster
Fans "data updated" notifications out to connected dashboards as
server-sent events.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional, Set

logger = logging.getLogger(__name__)

DATA_UPDATED = "data-updated"
KEEPALIVE_SECONDS = 25.0


def format_event(event: str, data: Any) -> str:
    """One SSE frame: ``event: <name>\\ndata: <json>\\n\\n``"""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class UpdatesBroadcaster:
    """
    Keeps one bounded queue per subscriber. A subscriber that stops reading
    loses its oldest frames instead of blocking the broadcaster.
    """

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscribers: Set[asyncio.Queue] = set()

    @property
    def client_count(self) -> int:
        return len(self._subscribers)

    def register(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._subscribers.add(queue)
        logger.debug(f"SSE client registered ({self.client_count} connected)")
        return queue

    def unregister(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        logger.debug(f"SSE client left ({self.client_count} connected)")

    def broadcast(self, event: str, data: Any = None) -> int:
        """Queue a frame for every subscriber; returns how many received it"""
        frame = format_event(event, data if data is not None else {})
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(frame)
        if self._subscribers:
            logger.info(f"📣 Broadcast '{event}' to {self.client_count} client(s)")
        return self.client_count

    async def stream(
        self,
        queue: Optional[asyncio.Queue] = None,
        keepalive_seconds: float = KEEPALIVE_SECONDS,
    ) -> AsyncIterator[str]:
        """Frames for one subscriber, starting with an ``:ok`` comment"""
        if queue is None:
            queue = self.register()
        try:
            yield ":ok\n\n"
            while True:
                try:
                    yield await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                except asyncio.TimeoutError:
                    yield ":keepalive\n\n"
        finally:
            self.unregister(queue)


# Singleton instance
_broadcaster: Optional[UpdatesBroadcaster] = None


def get_updates_broadcaster() -> UpdatesBroadcaster:
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = UpdatesBroadcaster()
    return _broadcaster
