from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Dict

from app.core.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionHub:
    """In-memory outbound queues, one per live connection.

    Delivery never awaits: messages are put on the connection's queue and a
    writer task per socket drains it, so a slow client never stalls the
    coordinator.
    """

    def __init__(self) -> None:
        self._queues: Dict[str, asyncio.Queue[str]] = {}

    def open(self, connection_id: str) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue()
        self._queues[connection_id] = queue
        return queue

    def close(self, connection_id: str) -> None:
        self._queues.pop(connection_id, None)

    def is_open(self, connection_id: str) -> bool:
        return connection_id in self._queues

    def deliver(self, connection_id: str, event: dict) -> bool:
        queue = self._queues.get(connection_id)
        if queue is None:
            logger.debug(f"Dropping {event.get('event')} for closed connection {connection_id}")
            return False
        queue.put_nowait(json.dumps(event))
        return True

    def drain(self, connection_id: str) -> list[dict]:
        """Pop everything queued for a connection without waiting."""
        queue = self._queues.get(connection_id)
        messages: list[dict] = []
        while queue is not None and not queue.empty():
            messages.append(json.loads(queue.get_nowait()))
        return messages

    async def stream(self, connection_id: str) -> AsyncIterator[str]:
        queue = self._queues.get(connection_id)
        if queue is None:
            return
        while self.is_open(connection_id):
            yield await queue.get()
