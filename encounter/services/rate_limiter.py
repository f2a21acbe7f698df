"""
Per-service minimum-interval throttle for catalog APIs.

Every catalog adapter calls `await rate_limiter.wait(service_name)` right
before its HTTP request. Calls for the same service are spaced at least
`interval_ms` apart within this process; the first call for a service
proceeds immediately. Concurrent callers for one service serialize on a
per-service lock so the read-last / sleep / write-timestamp sequence never
interleaves.

The clock and sleep functions are injectable so tests can simulate elapsed
time without real waiting.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from encounter.utils.constants import (
    DEFAULT_RATE_LIMIT_INTERVAL_MS,
    RATE_LIMIT_INTERVALS_MS,
)

logger = logging.getLogger(__name__)


class RateLimiter:
    """Minimum-interval limiter keyed by service name."""

    def __init__(
        self,
        intervals_ms: Optional[Dict[str, int]] = None,
        default_interval_ms: int = DEFAULT_RATE_LIMIT_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._intervals_ms = dict(intervals_ms if intervals_ms is not None else RATE_LIMIT_INTERVALS_MS)
        self._default_interval_ms = default_interval_ms
        self._clock = clock
        self._sleep = sleep
        self._last_call: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def interval_seconds(self, service_name: str) -> float:
        return self._intervals_ms.get(service_name, self._default_interval_ms) / 1000.0

    def _lock_for(self, service_name: str) -> asyncio.Lock:
        lock = self._locks.get(service_name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[service_name] = lock
        return lock

    async def wait(self, service_name: str) -> None:
        """Block until `service_name` may be called again, then claim the slot."""
        async with self._lock_for(service_name):
            last = self._last_call.get(service_name)
            if last is not None:
                remaining = self.interval_seconds(service_name) - (self._clock() - last)
                if remaining > 0:
                    logger.debug(f"Rate limit: waiting {remaining:.3f}s before calling {service_name}")
                    await self._sleep(remaining)
            self._last_call[service_name] = self._clock()


# Process-wide limiter shared by all catalog adapters
rate_limiter = RateLimiter()
