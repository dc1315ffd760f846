"""Process-wide gate for outbound search requests."""
from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable

from noboox.config import settings
from noboox.errors import RateLimitExceeded
from noboox.services.logger import log_event

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Bounds requests per sliding window and enforces a minimum spacing.

    Admission is serialized by an asyncio lock: a caller that arrives too soon
    after the previous request is suspended for the remaining spacing, and a
    caller that finds the window full fails fast with ``RateLimitExceeded``.
    Timestamps are recorded only for admitted requests.
    """

    def __init__(
        self,
        *,
        window_seconds: float = 60.0,
        max_requests: int = 5,
        min_interval_seconds: float = 3.0,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.window_seconds = float(window_seconds)
        self.max_requests = max(int(max_requests), 1)
        self.min_interval_seconds = max(float(min_interval_seconds), 0.0)
        self._clock = clock
        self._sleep = sleep
        self._timestamps: deque[float] = deque()
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._timestamps)

    async def acquire(self) -> None:
        async with self._lock:
            now = self._clock()
            self._prune(now)

            if self._last_request is not None:
                since_last = now - self._last_request
                if since_last < self.min_interval_seconds:
                    await self._sleep(self.min_interval_seconds - since_last)
                    now = self._clock()
                    self._prune(now)

            if len(self._timestamps) >= self.max_requests:
                oldest = self._timestamps[0]
                wait_ms = int((self.window_seconds - (now - oldest)) * 1000)
                log_event(
                    event_type="rate_limit_denied",
                    message="Search rate limit reached",
                    retry_after_ms=wait_ms,
                    in_window=len(self._timestamps),
                )
                raise RateLimitExceeded(wait_ms)

            self._timestamps.append(now)
            self._last_request = now

    def reset(self) -> None:
        self._timestamps.clear()
        self._last_request = None


_limiter: RateLimiter | None = None


def get_search_rate_limiter() -> RateLimiter:
    """Get or create the shared search rate limiter."""
    global _limiter
    if _limiter is None:
        _limiter = RateLimiter(
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
            min_interval_seconds=settings.rate_limit_min_interval_ms / 1000,
        )
    return _limiter
