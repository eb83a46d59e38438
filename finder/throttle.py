# finder/throttle.py
import asyncio
import time


class RateLimiter:
    """
    Token bucket pacing outbound requests to one source.

    Tokens refill continuously at ``requests_per_second`` up to
    ``burst_size``. ``acquire()`` takes one token, sleeping until one is
    available. Waiters are served one at a time, in arrival order.

    With ``burst_size=1`` the bucket degenerates to a fixed minimum gap of
    ``1 / requests_per_second`` seconds between requests.
    """

    def __init__(self, requests_per_second=10.0, burst_size=None, clock=None, sleep=None):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.requests_per_second = float(requests_per_second)
        self.burst_size = burst_size if burst_size is not None else max(1, int(requests_per_second))
        if self.burst_size < 1:
            raise ValueError("burst_size must be at least 1")
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(self.burst_size)
        self._updated = self._clock()
        self._lock = asyncio.Lock()

    def _refill(self):
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst_size), self._tokens + elapsed * self.requests_per_second)
        self._updated = now

    @property
    def available_tokens(self):
        self._refill()
        return self._tokens

    async def acquire(self):
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                await self._sleep((1.0 - self._tokens) / self.requests_per_second)
