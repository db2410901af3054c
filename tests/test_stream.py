"""
Tests for the stream URL registry.
"""

import unittest
from datetime import timedelta

from errors import Expired, InvalidInput, NotFound
from stream import StreamRegistry

from fakes import FakeClock


class TestStreamRegistry(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.registry = StreamRegistry(clock=self.clock)

    def test_never_set(self):
        with self.assertRaises(NotFound):
            self.registry.get_url()

    def test_rejects_insecure_url(self):
        for url in ("http://insecure", "", "ftp://x", "HTTPS//x"):
            with self.subTest(url=url):
                with self.assertRaises(InvalidInput):
                    self.registry.set_url(url)
        with self.assertRaises(NotFound):
            self.registry.get_url()

    def test_rejected_url_keeps_previous_value(self):
        self.registry.set_url("https://a.ngrok.app")
        with self.assertRaises(InvalidInput):
            self.registry.set_url("http://b.ngrok.app")
        self.assertEqual(self.registry.get_url().url, "https://a.ngrok.app")

    def test_set_then_get(self):
        self.registry.set_url("https://x")

        endpoint = self.registry.get_url()
        self.assertEqual(endpoint.url, "https://x")
        self.assertEqual(endpoint.last_update, self.clock.now)

    def test_fresh_at_exactly_two_hours(self):
        self.registry.set_url("https://x")
        self.clock.advance(hours=2)
        self.assertEqual(self.registry.get_url().url, "https://x")

    def test_expired_after_two_hours(self):
        endpoint = self.registry.set_url("https://x")
        self.clock.advance(hours=2, minutes=1)

        with self.assertRaises(Expired) as ctx:
            self.registry.get_url()
        self.assertEqual(ctx.exception.last_update, endpoint.last_update)

    def test_refresh_after_expiry(self):
        """Expiry keeps the value; a new set_url restarts the window."""
        self.registry.set_url("https://old")
        self.clock.advance(hours=3)
        with self.assertRaises(Expired):
            self.registry.get_url()

        self.registry.set_url("https://new")
        self.assertEqual(self.registry.get_url().url, "https://new")

    def test_custom_ttl(self):
        registry = StreamRegistry(ttl=timedelta(minutes=5), clock=self.clock)
        registry.set_url("https://x")
        self.clock.advance(minutes=6)
        with self.assertRaises(Expired):
            registry.get_url()


if __name__ == "__main__":
    unittest.main()
