"""
Tests for the TTL cache and the event bus.
"""

import unittest

from kosengrade.cache import TTLCache, make_cache_key
from kosengrade.events import EventBus


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache(unittest.TestCase):
    def test_key_format(self) -> None:
        self.assertEqual(make_cache_key("20", 31, 2, 2025), "syllabus_cache_20_31_2_2025")

    def test_get_before_and_after_expiry(self) -> None:
        clock = FakeClock()
        cache = TTLCache(clock=clock)
        cache.put("k", ["v"], ttl_seconds=60)

        clock.now += 60
        self.assertEqual(cache.get("k"), ["v"])

        clock.now += 1
        self.assertIsNone(cache.get("k"))
        # expired entries are dropped on read
        self.assertEqual(len(cache), 0)

    def test_missing_key(self) -> None:
        self.assertIsNone(TTLCache().get("nope"))

    def test_invalidate_and_clear_prefix(self) -> None:
        cache = TTLCache()
        cache.put("syllabus_cache_20_31_1_2025", 1, 60)
        cache.put("syllabus_cache_20_32_1_2025", 2, 60)
        cache.put("other", 3, 60)

        cache.invalidate("syllabus_cache_20_31_1_2025")
        self.assertIsNone(cache.get("syllabus_cache_20_31_1_2025"))

        cache.clear(prefix="syllabus_cache")
        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.get("other"), 3)

        cache.clear()
        self.assertEqual(len(cache), 0)


class TestEventBus(unittest.TestCase):
    def test_emit_reaches_listeners(self) -> None:
        bus = EventBus()
        received = []
        bus.on("pool:updated", received.append)

        payload = {"institution_id": "20", "department_id": 31, "count": 12}
        bus.emit("pool:updated", payload)

        self.assertEqual(received, [payload])

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        received = []
        unsubscribe = bus.on("subject:added", received.append)
        unsubscribe()
        bus.emit("subject:added", {"subject_id": "course-1"})
        self.assertEqual(received, [])

    def test_unknown_topic(self) -> None:
        bus = EventBus()
        with self.assertRaises(ValueError):
            bus.on("pool:refreshed", lambda p: None)
        with self.assertRaises(ValueError):
            bus.emit("pool:refreshed", {})

    def test_missing_payload_keys(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            EventBus().emit("absence:added", {"subject_id": "course-1"})
        self.assertIn("absences", str(ctx.exception))

    def test_failing_listener_does_not_stop_fan_out(self) -> None:
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("listener bug")

        bus.on("config:updated", broken)
        bus.on("config:updated", received.append)

        with self.assertLogs("kosengrade.events", level="ERROR"):
            bus.emit("config:updated", {})
        self.assertEqual(received, [{}])


if __name__ == "__main__":
    unittest.main()
