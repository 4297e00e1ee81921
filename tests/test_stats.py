from __future__ import annotations

import unittest

from userdir.stats import StatsService


class FakeClock:
    def __init__(self) -> None:
        self.now = 500.0

    def __call__(self) -> float:
        return self.now


class StatsServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.stats = StatsService(clock=self.clock)

    def test_empty_api_stats(self) -> None:
        payload = self.stats.api_stats()

        self.assertEqual(payload["total_requests"], 0)
        self.assertEqual(payload["average_latency_ms"], 0.0)
        self.assertEqual(payload["error_rate"], 0.0)
        self.assertEqual(payload["active_connections"], 0)

    def test_request_aggregates(self) -> None:
        self.stats.record_request(0.010, 200)
        self.stats.record_request(0.030, 404)
        self.stats.record_request(0.020, 500)
        self.stats.record_request(0.020, 503)
        self.clock.now += 120

        payload = self.stats.api_stats()

        self.assertEqual(payload["total_requests"], 4)
        self.assertAlmostEqual(payload["average_latency_ms"], 20.0)
        self.assertEqual(payload["error_rate"], 0.5)
        self.assertEqual(payload["requests_per_min"], 2.0)

    def test_active_connections(self) -> None:
        self.stats.connection_opened()
        self.stats.connection_opened()
        self.stats.connection_closed()
        self.assertEqual(self.stats.api_stats()["active_connections"], 1)

        self.stats.connection_closed()
        self.stats.connection_closed()
        self.assertEqual(self.stats.api_stats()["active_connections"], 0)

    def test_system_stats(self) -> None:
        self.clock.now += 12.5

        payload = self.stats.system_stats()

        self.assertEqual(payload["uptime_seconds"], 12.5)
        self.assertGreaterEqual(payload["threads"], 1)
        self.assertGreaterEqual(payload["cpus"], 1)
        self.assertTrue(payload["python_version"])
        self.assertTrue(payload["platform"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
