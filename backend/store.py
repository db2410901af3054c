"""
In-memory stores for detections, alerts and stats.

All stores live for the lifetime of the process. Detections and alerts are
kept newest-first in bounded deques; once a store is full, inserting evicts
the oldest record from the tail.
"""
import threading
from collections import deque
from itertools import islice
from typing import Callable, Deque, Iterable, List, Tuple
from datetime import datetime

from errors import NotFound
from models import Alert, Detection, DetectedObject, Stats, utcnow

MAX_DETECTIONS = 1000
MAX_ALERTS = 100


# ==================== Detection Operations ====================

class DetectionStore:
    """Bounded, newest-first collection of detections."""

    def __init__(self, capacity: int = MAX_DETECTIONS):
        self._items: Deque[Detection] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def insert(self, detection: Detection) -> str:
        """Prepend a detection, evicting the oldest one when full."""
        with self._lock:
            self._items.appendleft(detection)
        return detection.id

    def list(self, offset: int = 0, limit: int = 50) -> Tuple[int, List[Detection]]:
        """Return the total count and the page [offset, offset + limit)."""
        offset = max(offset, 0)
        limit = max(limit, 0)
        with self._lock:
            total = len(self._items)
            page = list(islice(self._items, offset, offset + limit))
        return total, page

    def recent(self, count: int = 10) -> List[Detection]:
        """Get the most recent detections."""
        return self.list(0, count)[1]

    def get(self, detection_id: str) -> Detection:
        with self._lock:
            for detection in self._items:
                if detection.id == detection_id:
                    return detection
        raise NotFound("Detection not found")

    def delete(self, detection_id: str) -> Detection:
        """Remove a detection and return it. Any stored image is left to the caller."""
        with self._lock:
            for index, detection in enumerate(self._items):
                if detection.id == detection_id:
                    del self._items[index]
                    return detection
        raise NotFound("Detection not found")


# ==================== Alert Operations ====================

class AlertStore:
    """Bounded, newest-first collection of alerts."""

    def __init__(self, capacity: int = MAX_ALERTS):
        self._items: Deque[Alert] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def insert(self, alert: Alert) -> str:
        with self._lock:
            self._items.appendleft(alert)
        return alert.id

    def list(self, only_unacknowledged: bool = False) -> Tuple[int, List[Alert]]:
        """Get all alerts, most recent first, optionally only the open ones."""
        with self._lock:
            if only_unacknowledged:
                page = [a for a in self._items if not a.acknowledged]
            else:
                page = list(self._items)
        return len(page), page

    def active_count(self) -> int:
        """Count alerts that have not been acknowledged yet."""
        with self._lock:
            return sum(1 for a in self._items if not a.acknowledged)

    def acknowledge(self, alert_id: str) -> Alert:
        """
        Mark an alert as acknowledged.

        Acknowledging an alert twice is not an error; the alert is
        returned unchanged.

        Raises:
            NotFound: if no alert has this id
        """
        with self._lock:
            for alert in self._items:
                if alert.id == alert_id:
                    alert.acknowledged = True
                    return alert
        raise NotFound("Alert not found")


# ==================== Statistics ====================

class StatsAggregator:
    """
    Running counters over every accepted detection.

    This is an append-only ledger: deleting a detection does not
    decrement anything.
    """

    def __init__(self, other_category: str = "other", clock: Callable[[], datetime] = utcnow):
        self._stats = Stats()
        self._other_category = other_category
        self._clock = clock
        self._lock = threading.Lock()

    def record_detection(self, objects: Iterable[DetectedObject]) -> None:
        """Count one detection event and one hit per object category."""
        with self._lock:
            self._stats.total_detections += 1
            for obj in objects:
                label = obj.category or self._other_category
                self._stats.by_category[label] = self._stats.by_category.get(label, 0) + 1
            self._stats.last_update = self._clock()

    def snapshot(self) -> Stats:
        with self._lock:
            return self._stats.model_copy(deep=True)
