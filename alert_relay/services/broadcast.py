"""In-process fan-out of live events to connected SSE clients."""

import asyncio
import json
import logging
from typing import Any

from alert_relay.utils.constants import SSE_QUEUE_SIZE

logger = logging.getLogger(__name__)


class Broadcaster:
    """One bounded asyncio queue per connected client.

    A client that stops draining its queue loses events rather than
    blocking the publisher.
    """

    def __init__(self, queue_size: int = SSE_QUEUE_SIZE):
        self.queue_size = queue_size
        self._clients: set[asyncio.Queue] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def register(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._clients.add(queue)
        logger.debug(f"SSE client connected ({len(self._clients)} total)")
        return queue

    def unregister(self, queue: asyncio.Queue) -> None:
        self._clients.discard(queue)
        logger.debug(f"SSE client disconnected ({len(self._clients)} total)")

    def broadcast(self, event: str, data: dict[str, Any]) -> int:
        """Queue an event for every client. Returns how many clients received it."""
        message = format_sse(event, data)
        delivered = 0
        for queue in list(self._clients):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("SSE client queue full, dropping event")
        return delivered


def format_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


broadcaster = Broadcaster()
