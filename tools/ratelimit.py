"""Async token bucket for pacing oracle calls.

Replaces fixed sleep-between-batches pacing with a limiter parameterized
by the oracle's actual rate limit. One bucket is shared by every oracle
call site (scoring, deep analysis, cross-linking) so the combined request
rate stays under the provider's quota.
"""

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class TokenBucket:
    """Async token bucket that smooths bursts to a steady rate.

    Allows up to `capacity` requests to fire immediately, then paces
    subsequent requests at `rate` per second. The lock is created lazily
    so it binds to the running event loop on first use.

    Example:
        >>> bucket = TokenBucket.per_minute(60)
        >>> await bucket.acquire()
    """

    def __init__(self, rate: float, capacity: float):
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._rate = rate          # tokens refilled per second
        self._capacity = capacity  # max burst size
        self._tokens = capacity    # start full so first N calls are instant
        self._last_refill = time.monotonic()
        self._lock: asyncio.Lock | None = None

    @classmethod
    def per_minute(cls, requests_per_minute: float, burst: float | None = None) -> "TokenBucket":
        """Build a bucket from a requests-per-minute quota.

        The default burst is one second's worth of requests (at least 1).
        """
        rate = requests_per_minute / 60.0
        capacity = burst if burst is not None else max(1.0, rate)
        return cls(rate=rate, capacity=capacity)

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> float:
        return self._capacity

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_refill = now

    async def acquire(self) -> None:
        """Wait until a token is available, then consume one."""
        while True:
            async with self._get_lock():
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = (1.0 - self._tokens) / self._rate
            # Sleep outside the lock so other waiters can refill/check too
            logger.debug("Rate limit wait | seconds=%.2f", wait)
            await asyncio.sleep(wait)
