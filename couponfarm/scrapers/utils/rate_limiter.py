"""Per-host request pacing for coupon sites.

Coupon sites are small and quick to ban crawlers, and reveal endpoints are
usually stricter than listing pages. Every host gets its own token bucket;
the bucket starts full so the first few requests of a run go out at once.
"""

import asyncio
import time
from typing import Dict
from urllib.parse import urlparse


class TokenBucket:
    """Refills ``rate`` tokens per second up to ``capacity``; one request costs one token."""

    def __init__(self, rate: float, capacity: float):
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.updated_at = time.monotonic()
        self.waited = 0.0  # Total seconds spent blocked
        self._lock = asyncio.Lock()

    def _top_up(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated_at) * self.rate)
        self.updated_at = now

    async def acquire(self, tokens: float = 1.0) -> None:
        async with self._lock:
            self._top_up()
            while self.tokens < tokens:
                delay = (tokens - self.tokens) / self.rate
                self.waited += delay
                await asyncio.sleep(delay)
                self._top_up()
            self.tokens -= tokens


def _host(target: str) -> str:
    """Accept either a full URL or a bare host."""
    if "://" in target:
        return urlparse(target).netloc.lower()
    return target.lower()


class DomainRateLimiter:
    """Token bucket per host, with tighter limits for known sites.

    Example:
        limiter = DomainRateLimiter()
        await limiter.acquire("https://www.radins.com/code-promo/fnac")
    """

    # Requests per minute
    DOMAIN_LIMITS_RPM = {
        "coupons.wagjag.com": 20,
        "www.radins.com": 20,
        "gutscheine.chip.de": 20,
        "discountcode.metro.co.uk": 20,
    }

    DEFAULT_RPM = 30

    def __init__(self):
        self._buckets: Dict[str, TokenBucket] = {}

    @staticmethod
    def _make_bucket(rpm: int) -> TokenBucket:
        # Burst of a tenth of a minute's budget, never less than two requests
        return TokenBucket(rate=rpm / 60.0, capacity=max(2.0, rpm / 10.0))

    def _bucket(self, host: str) -> TokenBucket:
        bucket = self._buckets.get(host)
        if bucket is None:
            bucket = self._make_bucket(self.DOMAIN_LIMITS_RPM.get(host, self.DEFAULT_RPM))
            self._buckets[host] = bucket
        return bucket

    async def acquire(self, target: str, tokens: float = 1.0) -> None:
        """Block until ``target`` (URL or host) may be requested again."""
        await self._bucket(_host(target)).acquire(tokens)

    def set_custom_limit(self, target: str, rpm: int) -> None:
        """Override the limit for a host, starting from a full bucket."""
        self._buckets[_host(target)] = self._make_bucket(rpm)

    def get_current_rate(self, target: str) -> float:
        """Requests per minute currently allowed for a host."""
        return self._bucket(_host(target)).rate * 60.0

    def total_wait(self) -> float:
        """Seconds spent waiting across all hosts."""
        return sum(bucket.waited for bucket in self._buckets.values())
