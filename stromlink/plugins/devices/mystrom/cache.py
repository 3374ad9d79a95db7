"""Time-boxed single-flight cache for device reads."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional


class CacheEntry:
    """
    Cached result of a device read.

    - A value younger than ``ttl`` seconds is returned without fetching.
    - Concurrent callers share one in-flight fetch and all receive its
      result or its exception. Failed fetches are not cached.
    - ``invalidate()`` drops the value and detaches any in-flight fetch, so
      reads started afterwards always fetch again.
    """

    def __init__(self, ttl: float = 2.0, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self.value: Any = None
        self.fetched_at: Optional[float] = None
        self.in_flight: Optional[asyncio.Future] = None
        self._generation = 0

    @property
    def is_fresh(self) -> bool:
        return self.fetched_at is not None and self._clock() - self.fetched_at < self.ttl

    async def get_value(self, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value or the result of a (shared) ``fetch()``."""
        if self.is_fresh:
            return self.value

        if self.in_flight is None:
            self.in_flight = self._start_fetch(fetch)

        # Shielded so a cancelled caller does not cancel the shared fetch
        return await asyncio.shield(self.in_flight)

    def invalidate(self) -> None:
        self.value = None
        self.fetched_at = None
        self.in_flight = None
        self._generation += 1

    def _start_fetch(self, fetch: Callable[[], Awaitable[Any]]) -> asyncio.Future:
        generation = self._generation
        future = asyncio.ensure_future(fetch())
        future.add_done_callback(lambda done: self._fetch_done(done, generation))
        return future

    def _fetch_done(self, future: asyncio.Future, generation: int) -> None:
        if self.in_flight is future:
            self.in_flight = None

        if future.cancelled() or future.exception() is not None:
            return

        # A fetch started before an invalidation must not repopulate the cache
        if generation == self._generation:
            self.value = future.result()
            self.fetched_at = self._clock()
