"""Token-bucket pacing for outbound API calls."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable


logger = logging.getLogger(__name__)


class TokenBucket:
    """Smoothly paces callers to ``rate_per_second`` admissions.

    Tokens refill continuously instead of resetting every second. The bucket
    starts with a single token so a cold start does not burst, and a rate of
    zero or less disables pacing.
    """

    def __init__(
        self,
        rate_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.rate_per_second = float(rate_per_second)
        self.capacity = max(1.0, self.rate_per_second)
        self.refill_rate_per_ms = self.rate_per_second / 1000
        self._clock = clock
        self._sleep = sleep
        self._tokens = 1.0
        self._last_refill_ms = self._now_ms()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.rate_per_second > 0

    @property
    def tokens(self) -> float:
        return self._tokens

    async def acquire(self) -> None:
        if not self.enabled:
            return
        # Serialised so a woken waiter cannot take a token another waiter was promised.
        async with self._lock:
            self._refill()
            while self._tokens < 1:
                wait_ms = (1 - self._tokens) / self.refill_rate_per_ms
                logger.debug("Rate limit reached, waiting %.0fms", wait_ms)
                await self._sleep(wait_ms / 1000)
                self._refill()
            self._tokens -= 1

    def _refill(self) -> None:
        now = self._now_ms()
        elapsed = max(0.0, now - self._last_refill_ms)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate_per_ms)
        self._last_refill_ms = now

    def _now_ms(self) -> float:
        return self._clock() * 1000
