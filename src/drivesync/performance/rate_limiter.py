"""Sliding-window rate limiting for remote API calls."""

import asyncio
import time
from collections import deque
from contextlib import asynccontextmanager
from typing import Callable, Deque

from ..utils.logging import get_logger


class AsyncRateLimiter:
    """Rate limiter for async operations."""

    def __init__(
        self,
        max_calls: int,
        time_window: float,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize rate limiter.

        Args:
            max_calls: Maximum number of calls in the time window
            time_window: Time window in seconds
            clock: Monotonic time source
        """
        self.max_calls = max(1, max_calls)
        self.time_window = time_window
        self.calls: Deque[float] = deque()
        self.lock = asyncio.Lock()
        self._clock = clock

        self.logger = get_logger(self.__class__.__name__)

    async def acquire(self):
        """Wait until another call fits in the window, then record it."""
        async with self.lock:
            while True:
                now = self._clock()

                while self.calls and now - self.calls[0] >= self.time_window:
                    self.calls.popleft()

                if len(self.calls) < self.max_calls:
                    self.calls.append(now)
                    return

                wait_time = self.time_window - (now - self.calls[0])
                self.logger.debug("Rate limit reached, waiting", wait_seconds=round(wait_time, 3))
                await asyncio.sleep(wait_time)

    @asynccontextmanager
    async def limit(self):
        """Context manager for rate limiting."""
        await self.acquire()
        yield
