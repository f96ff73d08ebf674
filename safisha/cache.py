import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

QueryKey = tuple
Fetcher = Callable[[], Awaitable[Any]]

DEFAULT_STALE_SECONDS = 5 * 60
DEFAULT_GC_SECONDS = 10 * 60


@dataclass
class CacheEntry:
    data: Any
    fetched_at: float
    stale_time: float
    fetcher: Fetcher | None = None
    invalidated: bool = False
    last_used: float = field(default=0.0)

    def is_stale(self, now: float) -> bool:
        return self.invalidated or (now - self.fetched_at) >= self.stale_time


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    return key[: len(prefix)] == tuple(prefix)


class QueryClient:
    """
    Server data cached per query key. Fresh entries are served without a
    fetch; invalidating a key prefix marks every matching entry stale and
    refetches those that know how to.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, gc_time: float = DEFAULT_GC_SECONDS):
        self.clock = clock
        self.gc_time = gc_time
        self._entries: dict[QueryKey, CacheEntry] = {}

    def __contains__(self, key) -> bool:
        return tuple(key) in self._entries

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    async def fetch_query(self, key: QueryKey, fetcher: Fetcher, stale_time: float = DEFAULT_STALE_SECONDS) -> Any:
        key = tuple(key)
        now = self.clock()
        entry = self._entries.get(key)
        if entry is not None and not entry.is_stale(now):
            entry.last_used = now
            entry.fetcher = fetcher
            logger.debug(f"Cache HIT: {key}")
            return entry.data

        logger.debug(f"Cache MISS: {key}")
        data = await fetcher()
        now = self.clock()
        self._entries[key] = CacheEntry(data=data, fetched_at=now, stale_time=stale_time, fetcher=fetcher, last_used=now)
        return data

    async def refetch(self, key: QueryKey) -> Any:
        key = tuple(key)
        entry = self._entries.get(key)
        if entry is None or entry.fetcher is None:
            return None
        data = await entry.fetcher()
        now = self.clock()
        entry.data = data
        entry.fetched_at = now
        entry.last_used = now
        entry.invalidated = False
        return data

    def get_query_data(self, key: QueryKey) -> Any:
        entry = self._entries.get(tuple(key))
        return entry.data if entry is not None else None

    def set_query_data(self, key: QueryKey, data: Any, stale_time: float = DEFAULT_STALE_SECONDS) -> Any:
        """`data` may be a value or a callable updater receiving the current value."""
        key = tuple(key)
        entry = self._entries.get(key)
        current = entry.data if entry is not None else None
        if callable(data):
            data = data(current)

        now = self.clock()
        if entry is None:
            self._entries[key] = CacheEntry(data=data, fetched_at=now, stale_time=stale_time, last_used=now)
        else:
            entry.data = data
            entry.fetched_at = now
            entry.last_used = now
            entry.invalidated = False
        return data

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(tuple(key))
        return entry is None or entry.is_stale(self.clock())

    async def invalidate(self, prefix: QueryKey, refetch: bool = True) -> list[QueryKey]:
        matched = [k for k in self._entries if key_matches(k, tuple(prefix))]
        for k in matched:
            self._entries[k].invalidated = True
        logger.debug(f"Cache INVALIDATE: {prefix} ({len(matched)} keys)")

        if refetch:
            for k in matched:
                # entries can be dropped while an earlier refetch is awaited
                entry = self._entries.get(k)
                if entry is None or entry.fetcher is None:
                    continue
                try:
                    await self.refetch(k)
                except Exception as e:
                    # entry stays stale; the next read retries
                    logger.error(f"Refetch after invalidation failed for {k}: {e}")
        return matched

    def remove(self, prefix: QueryKey) -> int:
        matched = [k for k in self._entries if key_matches(k, tuple(prefix))]
        for k in matched:
            del self._entries[k]
        return len(matched)

    def collect(self) -> int:
        now = self.clock()
        expired = [k for k, e in self._entries.items() if (now - e.last_used) >= self.gc_time]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
