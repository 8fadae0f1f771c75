import unittest
from unittest.mock import MagicMock, patch

from redis import exceptions as redis_exceptions

from ricehub.ratelimit import InMemoryRateLimiter, RedisRateLimiter


class InMemoryRateLimiterTests(unittest.TestCase):
    @patch("ricehub.ratelimit.time.monotonic")
    def test_window_resets_after_expiry(self, mock_monotonic):
        mock_monotonic.return_value = 100.0
        limiter = InMemoryRateLimiter()
        self.assertEqual(limiter.increment("/rices-a", 60), 1)
        self.assertEqual(limiter.increment("/rices-a", 60), 2)
        self.assertEqual(limiter.increment("/rices-b", 60), 1)

        mock_monotonic.return_value = 159.0
        self.assertEqual(limiter.increment("/rices-a", 60), 3)

        mock_monotonic.return_value = 160.0
        self.assertEqual(limiter.increment("/rices-a", 60), 1)

    def test_reset(self):
        limiter = InMemoryRateLimiter()
        limiter.increment("key", 60)
        limiter.reset()
        self.assertEqual(limiter.increment("key", 60), 1)


class RedisRateLimiterTests(unittest.TestCase):
    @patch("ricehub.ratelimit.redis.Redis.from_url")
    def test_expiry_is_set_on_first_hit_only(self, mock_from_url):
        client = MagicMock()
        client.incr.side_effect = [1, 2]
        mock_from_url.return_value = client

        limiter = RedisRateLimiter(url="redis://localhost:6379/0")
        self.assertEqual(limiter.increment("/rices-abc", 3600), 1)
        self.assertEqual(limiter.increment("/rices-abc", 3600), 2)

        client.incr.assert_called_with("pathRateLimit:/rices-abc")
        client.expire.assert_called_once_with("pathRateLimit:/rices-abc", 3600)

    @patch("ricehub.ratelimit.redis.Redis.from_url")
    def test_connection_error_lets_request_through(self, mock_from_url):
        broken = MagicMock()
        broken.incr.side_effect = redis_exceptions.ConnectionError("gone")
        fresh = MagicMock()
        fresh.incr.return_value = 1
        mock_from_url.side_effect = [broken, fresh]

        limiter = RedisRateLimiter(url="redis://localhost:6379/0")
        self.assertEqual(limiter.increment("key", 60), 0)
        self.assertIs(limiter.client, fresh)
        self.assertEqual(limiter.increment("key", 60), 1)


if __name__ == "__main__":
    unittest.main()
