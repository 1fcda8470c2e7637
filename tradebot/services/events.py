"""
In-process event fan-out.

The orchestrator publishes ``trade`` and ``withdraw`` events through the
EventBroadcaster interface; websocket clients subscribe here. Each
subscriber gets its own bounded queue so a slow client cannot stall a trade.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Set

from ..core.interfaces import EventBroadcaster

logger = logging.getLogger(__name__)


class EventHub(EventBroadcaster):
    def __init__(self, max_queue: int = 100) -> None:
        self.max_queue = max_queue
        self._subscribers: Set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    async def publish(self, event: str, payload: Dict[str, Any]) -> None:
        message = {
            "event": event,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("Dropping %s event for a slow subscriber", event)
