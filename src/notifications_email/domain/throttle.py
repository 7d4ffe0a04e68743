"""
Email Notification Processor - Send Throttling.

Sliding-window admission control: at most ``limit`` admissions within any
rolling ``interval_ms`` window. Bursts up to the limit pass immediately;
later callers wait, in arrival order, until the oldest admission leaves the
window.
"""
from __future__ import annotations

import asyncio
import functools
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import structlog

logger = structlog.get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class Throttle:
    """Rolling-window rate limiter for coroutines."""
    def __init__(
        self,
        limit: int,
        interval_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if interval_ms < 0:
            raise ValueError("interval_ms must not be negative")
        self._limit = limit
        self._interval = interval_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self._admitted: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def interval_ms(self) -> int:
        return int(self._interval * 1000)

    async def acquire(self) -> None:
        """Suspend until a slot in the current window is free, then take it."""
        async with self._lock:
            while True:
                now = self._clock()
                while self._admitted and now - self._admitted[0] >= self._interval:
                    self._admitted.popleft()
                if len(self._admitted) < self._limit:
                    self._admitted.append(now)
                    return
                delay = self._admitted[0] + self._interval - now
                logger.debug("throttle_waiting", delay_ms=round(delay * 1000, 2))
                await self._sleep(delay)

    def wrap(self, fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Return a version of ``fn`` whose calls are admitted through this throttle."""
        @functools.wraps(fn)
        async def throttled(*args: P.args, **kwargs: P.kwargs) -> T:
            await self.acquire()
            return await fn(*args, **kwargs)
        return throttled
