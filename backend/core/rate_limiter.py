"""
Per-client sliding-window rate limiting for the edit endpoint.

Each client identifier owns an ordered list of accepted-request timestamps.
Windows live in a bounded TTL cache so clients that go quiet are evicted
instead of accumulating forever. The read-filter-append sequence runs under a
single asyncio lock so concurrent handlers see a consistent view.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional

from cachetools import TTLCache
from fastapi import Request

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


class RateLimiter:
    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        max_clients: int = 10000,
        clock: Callable[[], float] = time.monotonic
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: TTLCache = TTLCache(maxsize=max_clients, ttl=window_seconds, timer=clock)
        self._lock = asyncio.Lock()

    async def allow(self, client_id: Optional[str], now: Optional[float] = None) -> bool:
        """
        Record a request for client_id if it fits in the current window.

        Args:
            client_id: Client identifier; empty or missing values share the
                "unknown" bucket
            now: Request time in seconds, defaults to the limiter's clock

        Returns:
            True if the request was accepted and recorded, False if rejected
        """
        key = client_id or UNKNOWN_CLIENT
        if now is None:
            now = self.clock()

        async with self._lock:
            recent = [t for t in self._windows.get(key, []) if now - t < self.window_seconds]

            if len(recent) >= self.limit:
                self._windows[key] = recent
                logger.warning(f"Rate limit exceeded for {key}: {len(recent)}/{self.limit}")
                return False

            recent.append(now)
            self._windows[key] = recent
            return True

    async def window_for(self, client_id: Optional[str]) -> List[float]:
        """Snapshot of the recorded timestamps for a client."""
        async with self._lock:
            return list(self._windows.get(client_id or UNKNOWN_CLIENT, []))

    async def reset(self) -> int:
        """
        Forget all recorded windows.

        Returns:
            Number of client windows cleared
        """
        async with self._lock:
            count = len(self._windows)
            self._windows.clear()
            return count


def get_client_id(request: Request) -> str:
    """Extract the client identifier from the forwarded-address header"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    return UNKNOWN_CLIENT


def get_rate_limiter(request: Request) -> RateLimiter:
    """Dependency returning the limiter owned by the running application"""
    return request.app.state.rate_limiter
