"""Bounded, time-expiring cache for read models (breakdowns, leaderboards).

Only read paths consult this cache. Ledger writes invalidate affected keys, and
entries expire after a few seconds regardless.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, MutableMapping

from superfan_api.core.settings import settings


@dataclass(slots=True)
class _CacheEntry:
    value: Any
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    locks: int = 0


class ReadModelCache:
    """LRU-evicting TTL map keyed by tuples such as ``("breakdown", club_id, user_id)``."""

    def __init__(
        self,
        *,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = settings.read_model_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._max_entries = settings.read_model_cache_max_entries if max_entries is None else max_entries
        if self._max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._clock = clock
        self._entries: OrderedDict[Hashable, _CacheEntry] = OrderedDict()
        self._locks: MutableMapping[Hashable, asyncio.Lock] = {}
        self._stats = CacheStats()

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None
        if not entry.is_valid(self._clock()):
            self._discard(key)
            self._stats.misses += 1
            return None
        self._entries.move_to_end(key)
        self._stats.hits += 1
        return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + self._ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._locks.pop(evicted, None)
            self._stats.evictions += 1

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return a cached value or load it once, even with concurrent callers."""

        cached = self.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_valid(self._clock()):
                return entry.value
            try:
                value = await loader()
                self.set(key, value)
            finally:
                if key not in self._entries and self._locks.get(key) is lock:
                    del self._locks[key]
            return value

    def invalidate(self, key: Hashable) -> None:
        self._discard(key)

    def invalidate_matching(self, predicate: Callable[[Hashable], bool]) -> int:
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            self._discard(key)
        return len(doomed)

    def _discard(self, key: Hashable) -> None:
        # A loader still holding the popped lock finishes normally; later callers get a fresh lock.
        self._entries.pop(key, None)
        self._locks.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()
        self._stats = CacheStats()

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._stats.hits,
            misses=self._stats.misses,
            evictions=self._stats.evictions,
            size=len(self._entries),
            locks=len(self._locks),
        )

    def __len__(self) -> int:
        return len(self._entries)


_read_model_cache = ReadModelCache()


def get_read_model_cache() -> ReadModelCache:
    return _read_model_cache


def invalidate_wallet_reads(club_id: Any, user_id: Any) -> None:
    """Drop cached views that include this member's wallet."""

    _read_model_cache.invalidate(("breakdown", club_id, user_id))
    _read_model_cache.invalidate_matching(
        lambda key: isinstance(key, tuple) and len(key) > 1 and key[0] == "leaderboard" and key[1] == club_id
    )
