"""
Fixed-window request counters for per-path rate limiting.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    """Counts hits for a key inside a window that starts with the first hit."""

    def increment(self, key: str, window_seconds: int) -> int:
        ...


@dataclass
class InMemoryRateLimiter:
    """Simple process-local counters for testing/dev."""

    counters: dict[str, tuple[int, float]] = field(default_factory=dict)

    def increment(self, key: str, window_seconds: int) -> int:
        now = time.monotonic()
        count, expires_at = self.counters.get(key, (0, now + window_seconds))
        if now >= expires_at:
            count, expires_at = 0, now + window_seconds
        count += 1
        self.counters[key] = (count, expires_at)
        return count

    def reset(self) -> None:
        self.counters.clear()


@dataclass
class RedisRateLimiter:
    """Redis-backed counters using INCR with an expiry set on the first hit."""

    url: str
    key_prefix: str = "pathRateLimit"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def increment(self, key: str, window_seconds: int) -> int:
        full_key = f"{self.key_prefix}:{key}"
        try:
            count = self.client.incr(full_key)
            if count == 1:
                self.client.expire(full_key, window_seconds)
            return int(count)
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections. Let the request through and
            # reconnect for the next one.
            logger.warning("Rate limit counter unavailable for %s", full_key)
            self.client = redis.Redis.from_url(self.url)
            return 0
