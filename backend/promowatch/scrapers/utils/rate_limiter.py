"""Token bucket rate limiter for pacing requests to one competitor domain."""

import asyncio
import time
from typing import Dict, Optional


class TokenBucket:
    """Token bucket: starts full, refills at a constant rate, one token per request."""

    def __init__(self, rate: float, capacity: float):
        """Initialize token bucket.

        Args:
            rate: Tokens per second (e.g., 0.5 = 30 RPM)
            capacity: Maximum tokens in bucket (burst capacity)
        """
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens from the bucket, sleeping until enough are available."""
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                wait_time = (tokens - self.tokens) / self.rate
                await asyncio.sleep(wait_time)


class DomainRateLimiter:
    """Per-domain rate limiter.

    Every domain gets the same conservative default.
    """

    DEFAULT_RPM = 30

    def __init__(self, default_rpm: Optional[int] = None):
        self.default_rpm = default_rpm or self.DEFAULT_RPM
        self._buckets: Dict[str, TokenBucket] = {}

    @staticmethod
    def _make_bucket(rpm: int) -> TokenBucket:
        # Small bursts allowed: 10% of RPM, at least 2
        return TokenBucket(rate=rpm / 60.0, capacity=max(2.0, rpm / 10.0))

    def _get_bucket(self, domain: str) -> TokenBucket:
        if domain not in self._buckets:
            self._buckets[domain] = self._make_bucket(self.default_rpm)
        return self._buckets[domain]

    async def acquire(self, domain: str, tokens: float = 1.0) -> None:
        """Block until the domain's bucket allows another request.

        Args:
            domain: Domain name (e.g., "shop.example.ba")
            tokens: Number of tokens to acquire (default 1.0)
        """
        await self._get_bucket(domain).acquire(tokens)
