from __future__ import annotations

import asyncio
import time
from typing import Callable


class TokenBucket:
    """
    Outbound request pacing for one marketplace.

    `capacity` requests may go out back to back; after that requests are spaced at
    `rate` per second. State is process-local.
    """

    def __init__(self, rate: float, capacity: int, clock: Callable[[], float] = time.monotonic) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.rate = float(rate)
        self.capacity = int(capacity)
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = asyncio.Lock()

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated = now

    def try_acquire(self, tokens: int = 1) -> bool:
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    def wait_time(self, tokens: int = 1) -> float:
        self._refill()
        missing = tokens - self._tokens
        return 0.0 if missing <= 0 else missing / self.rate

    async def acquire(self, tokens: int = 1) -> float:
        """Waits until `tokens` are available. Returns the seconds spent waiting."""
        if tokens > self.capacity:
            raise ValueError("cannot acquire more tokens than the bucket capacity")

        waited = 0.0
        async with self._lock:
            while not self.try_acquire(tokens):
                delay = self.wait_time(tokens)
                waited += delay
                await asyncio.sleep(delay)
        return waited
