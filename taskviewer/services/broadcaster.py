"""Fan-out of stream events to connected Server-Sent Events clients."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Optional

from taskviewer import config
from taskviewer.models import StreamEvent
from taskviewer.observability import record_broadcast

logger = logging.getLogger("taskviewer.events")

CONNECTED_EVENT = StreamEvent(type="connected")


def format_sse(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.to_payload(), separators=(',', ':'))}\n\n"


def _end_stream(queue: asyncio.Queue[Optional[str]]) -> None:
    """Discard pending frames and queue the sentinel that ends ``subscribe``."""
    while not queue.empty():
        queue.get_nowait()
    queue.put_nowait(None)


class EventBroadcaster:
    """Owns the set of connected clients.

    Each client is an ``asyncio.Queue`` of pre-serialized frames. A client
    whose queue is full is treated as a failed write and dropped; the other
    clients are unaffected. Nothing is persisted, so a client only sees events
    broadcast while it is registered.
    """

    def __init__(self, queue_size: int = config.EVENT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._clients: set[asyncio.Queue[Optional[str]]] = set()
        self._closed = False

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def add_client(self) -> asyncio.Queue[Optional[str]]:
        """Register a client and queue the synthetic ``connected`` frame for it."""
        queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=self.queue_size)
        queue.put_nowait(format_sse(CONNECTED_EVENT))
        if self._closed:
            queue.put_nowait(None)
        else:
            self._clients.add(queue)
        logger.debug("Stream client connected (%d total)", len(self._clients))
        return queue

    def remove_client(self, queue: asyncio.Queue[Optional[str]]) -> None:
        if queue in self._clients:
            self._clients.discard(queue)
            logger.debug("Stream client disconnected (%d total)", len(self._clients))

    def broadcast(self, event: StreamEvent) -> int:
        """Queue ``event`` for every client; returns how many accepted it."""
        frame = format_sse(event)
        delivered = 0
        dropped = 0
        for queue in list(self._clients):
            try:
                queue.put_nowait(frame)
                delivered += 1
            except asyncio.QueueFull:
                self._clients.discard(queue)
                _end_stream(queue)
                dropped += 1
                logger.warning("Dropping stream client that stopped reading events")
        record_broadcast(delivered, dropped)
        return delivered

    async def subscribe(self) -> AsyncIterator[str]:
        """Yield SSE frames for one client until it disconnects or the broadcaster closes."""
        queue = self.add_client()
        try:
            while True:
                frame = await queue.get()
                if frame is None:
                    return
                yield frame
        finally:
            self.remove_client(queue)

    def close(self) -> None:
        """End every open subscription; later subscribers get only ``connected``."""
        self._closed = True
        for queue in list(self._clients):
            _end_stream(queue)
        self._clients.clear()
