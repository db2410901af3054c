"""
Tests for mDNS advertisement.
"""

import unittest
from unittest import mock

from discovery import SERVICE_TYPE, ServiceAdvertiser


class TestServiceAdvertiser(unittest.TestCase):

    def setUp(self):
        patcher = mock.patch("discovery.Zeroconf")
        self.zeroconf_cls = patcher.start()
        self.addCleanup(patcher.stop)
        ip_patcher = mock.patch("discovery.get_local_ip", return_value="192.168.1.20")
        ip_patcher.start()
        self.addCleanup(ip_patcher.stop)
        self.advertiser = ServiceAdvertiser("agriwatch", 3000, "1.0.0")

    def test_start_and_stop(self):
        self.assertTrue(self.advertiser.start())
        self.assertTrue(self.advertiser.running)

        zc = self.zeroconf_cls.return_value
        info = zc.register_service.call_args.args[0]
        self.assertEqual(info.type, SERVICE_TYPE)
        self.assertEqual(info.port, 3000)
        self.assertEqual(info.server, "agriwatch.local.")

        self.advertiser.stop()
        zc.unregister_service.assert_called_once_with(info)
        zc.close.assert_called_once()
        self.assertFalse(self.advertiser.running)

    def test_registration_failure_is_not_fatal(self):
        zc = self.zeroconf_cls.return_value
        zc.register_service.side_effect = OSError("no multicast")

        with self.assertLogs("discovery", level="WARNING"):
            self.assertFalse(self.advertiser.start())

        zc.close.assert_called_once()
        self.assertFalse(self.advertiser.running)

    def test_stop_without_start(self):
        self.advertiser.stop()
        self.zeroconf_cls.assert_not_called()


if __name__ == "__main__":
    unittest.main()
