"""
Sliding-window throttling tests, driven by an injected clock.
"""

import unittest

from zkotp_api import rate_limit
from zkotp_api.rate_limit import RateLimiter


class Clock:

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestRateLimiter(unittest.TestCase):

    def setUp(self):
        self.clock = Clock()
        self.limiter = RateLimiter(3, window_seconds=60, clock=self.clock)

    def test_limit_per_key(self):
        results = [self.limiter.check("uid:alice") for _ in range(4)]
        self.assertEqual([r.allowed for r in results], [True, True, True, False])
        self.assertEqual([r.remaining for r in results], [2, 1, 0, 0])
        self.assertTrue(self.limiter.check("uid:bob").allowed)

    def test_retry_after_counts_from_oldest_hit(self):
        self.limiter.check("k")
        self.clock.now += 20
        self.limiter.check("k")
        self.limiter.check("k")
        blocked = self.limiter.check("k")
        self.assertFalse(blocked.allowed)
        self.assertEqual(blocked.retry_after, 40)
        self.assertEqual(blocked.retry_after_header, "40")

    def test_window_slides(self):
        for _ in range(3):
            self.limiter.check("k")
        self.clock.now += 60
        self.assertTrue(self.limiter.check("k").allowed)

    def test_idle_keys_swept(self):
        limiter = RateLimiter(1, window_seconds=10, clock=self.clock)
        for i in range(rate_limit.SWEEP_EVERY - 1):
            limiter.check(f"client:{i}")
        self.clock.now += 11
        limiter.check("client:last")
        self.assertEqual(list(limiter._windows), ["client:last"])


if __name__ == "__main__":
    unittest.main()
