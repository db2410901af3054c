"""
Real-time fan-out to connected dashboard clients.

Every subscriber gets its own bounded queue. Broadcasting never awaits: a
subscriber that cannot keep up misses events rather than slowing down the
ingestion path or the other clients.
"""
import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)

NEW_DETECTION = "new_detection"
NEW_ALERT = "new_alert"
STREAM_URL_UPDATED = "stream_url_updated"
ALERT_ACKNOWLEDGED = "alert_acknowledged"
INITIAL_STATS = "initial_stats"

Event = Tuple[str, Any]


@dataclass
class Subscription:
    id: str
    queue: "asyncio.Queue[Event]" = field(repr=False)

    async def next_event(self) -> Event:
        return await self.queue.get()


class Publisher:
    """
    Publish/subscribe channel for domain events.

    Args:
        snapshot: Returns the payload sent to each new subscriber as
            `initial_stats`, before any later broadcast
        queue_size: Max events buffered per subscriber
    """

    def __init__(self, snapshot: Callable[[], Any], queue_size: int = 100):
        self._snapshot = snapshot
        self._queue_size = queue_size
        self._subscribers: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(id=uuid.uuid4().hex[:12], queue=asyncio.Queue(maxsize=self._queue_size))
        # Seed and register together so no broadcast can slip in ahead of the stats
        with self._lock:
            subscription.queue.put_nowait((INITIAL_STATS, self._snapshot()))
            self._subscribers[subscription.id] = subscription
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscribers.pop(subscription.id, None)

    def broadcast(self, event: str, payload: Any) -> None:
        """Queue an event for every connected subscriber without blocking."""
        with self._lock:
            subscribers = list(self._subscribers.values())

        for subscription in subscribers:
            try:
                subscription.queue.put_nowait((event, payload))
            except asyncio.QueueFull:
                logger.warning(f"⚠️ Subscriber {subscription.id} is lagging, dropped '{event}'")
