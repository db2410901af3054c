"""
Tests for the in-memory detection, alert and stats stores.
"""

import unittest
from datetime import datetime, timezone

from errors import NotFound
from models import Alert, DetectedObject
from store import MAX_ALERTS, MAX_DETECTIONS, AlertStore, DetectionStore, StatsAggregator

from fakes import FakeClock, make_detection


def make_alert(alert_id, detection_id="det_1"):
    return Alert(
        id=alert_id,
        timestamp=datetime(2024, 6, 1, tzinfo=timezone.utc),
        message="⚠️ Priority detection: vache",
        detection=make_detection(detection_id, "vache"),
    )


class TestDetectionStore(unittest.TestCase):
    """Test DetectionStore retention and lookups."""

    def setUp(self):
        self.store = DetectionStore()

    def test_newest_first(self):
        for i in range(3):
            self.store.insert(make_detection(f"det_{i}", "chat"))

        total, page = self.store.list()
        self.assertEqual(total, 3)
        self.assertEqual([d.id for d in page], ["det_2", "det_1", "det_0"])

    def test_keeps_most_recent_thousand(self):
        for i in range(MAX_DETECTIONS + 25):
            self.store.insert(make_detection(f"det_{i}", "chat"))

        total, page = self.store.list(0, MAX_DETECTIONS + 25)
        self.assertEqual(total, MAX_DETECTIONS)
        expected = [f"det_{i}" for i in range(MAX_DETECTIONS + 24, 24, -1)]
        self.assertEqual([d.id for d in page], expected)

    def test_pagination(self):
        for i in range(5):
            self.store.insert(make_detection(f"det_{i}", "chat"))

        total, page = self.store.list(offset=1, limit=2)
        self.assertEqual(total, 5)
        self.assertEqual([d.id for d in page], ["det_3", "det_2"])

    def test_out_of_range_offset_is_empty(self):
        self.store.insert(make_detection("det_0", "chat"))

        total, page = self.store.list(offset=50, limit=10)
        self.assertEqual(total, 1)
        self.assertEqual(page, [])

    def test_get(self):
        self.store.insert(make_detection("det_0", "chat"))
        self.assertEqual(self.store.get("det_0").id, "det_0")
        with self.assertRaises(NotFound):
            self.store.get("det_missing")

    def test_delete(self):
        self.store.insert(make_detection("det_0", "chat"))
        self.store.insert(make_detection("det_1", "chien"))

        removed = self.store.delete("det_0")

        self.assertEqual(removed.id, "det_0")
        self.assertEqual([d.id for d in self.store.list()[1]], ["det_1"])
        with self.assertRaises(NotFound):
            self.store.delete("det_0")

    def test_recent(self):
        for i in range(15):
            self.store.insert(make_detection(f"det_{i}", "chat"))
        self.assertEqual(len(self.store.recent(10)), 10)
        self.assertEqual(self.store.recent(10)[0].id, "det_14")


class TestAlertStore(unittest.TestCase):
    """Test AlertStore retention and acknowledgement."""

    def setUp(self):
        self.store = AlertStore()

    def test_keeps_most_recent_hundred(self):
        for i in range(MAX_ALERTS + 10):
            self.store.insert(make_alert(f"alert_{i}"))

        total, page = self.store.list()
        self.assertEqual(total, MAX_ALERTS)
        self.assertEqual(page[0].id, f"alert_{MAX_ALERTS + 9}")
        self.assertEqual(page[-1].id, "alert_10")

    def test_acknowledge_is_idempotent(self):
        self.store.insert(make_alert("alert_0"))

        first = self.store.acknowledge("alert_0")
        second = self.store.acknowledge("alert_0")

        self.assertTrue(first.acknowledged)
        self.assertTrue(second.acknowledged)

    def test_acknowledge_unknown(self):
        with self.assertRaises(NotFound):
            self.store.acknowledge("alert_missing")

    def test_unacknowledged_filter(self):
        self.store.insert(make_alert("alert_0"))
        self.store.insert(make_alert("alert_1"))
        self.store.acknowledge("alert_0")

        total, page = self.store.list(only_unacknowledged=True)
        self.assertEqual(total, 1)
        self.assertEqual(page[0].id, "alert_1")
        self.assertEqual(self.store.active_count(), 1)
        self.assertEqual(self.store.list()[0], 2)


class TestStatsAggregator(unittest.TestCase):
    """Test StatsAggregator counters."""

    def setUp(self):
        self.clock = FakeClock()
        self.stats = StatsAggregator(clock=self.clock)

    def test_counts_per_object(self):
        self.stats.record_detection([
            DetectedObject(objet="vache", categorie="bétail"),
            DetectedObject(objet="cheval", categorie="bétail"),
            DetectedObject(objet="personne", categorie="humain"),
        ])

        snapshot = self.stats.snapshot()
        self.assertEqual(snapshot.total_detections, 1)
        self.assertEqual(snapshot.by_category, {"bétail": 2, "humain": 1})
        self.assertEqual(snapshot.last_update, self.clock.now)

    def test_missing_category_uses_sentinel(self):
        self.stats.record_detection([DetectedObject(objet="renard")])
        self.stats.record_detection([DetectedObject(objet="renard", categorie="")])

        self.assertEqual(self.stats.snapshot().by_category, {"other": 2})

    def test_custom_sentinel(self):
        stats = StatsAggregator(other_category="autres")
        stats.record_detection([DetectedObject(objet="renard")])
        self.assertEqual(stats.snapshot().by_category, {"autres": 1})

    def test_empty_event_still_counts(self):
        self.stats.record_detection([])
        self.assertEqual(self.stats.snapshot().total_detections, 1)
        self.assertEqual(self.stats.snapshot().by_category, {})

    def test_snapshot_is_a_copy(self):
        snapshot = self.stats.snapshot()
        self.stats.record_detection([DetectedObject(objet="chat", categorie="animal")])

        self.assertEqual(snapshot.total_detections, 0)
        self.assertEqual(snapshot.by_category, {})


if __name__ == "__main__":
    unittest.main()
