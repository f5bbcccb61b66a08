"""Bounded LRU/TTL cache of fragment sets already evaluated by the Detector."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import Protocol

# Cached outcome for a fragment set that was evaluated and produced no message
REJECTED = "__rejected__"


CacheKey = tuple[str, tuple[str, ...]]


def cache_key(channel_id: str, fragment_ids: Iterable[str]) -> CacheKey:
    """Canonical key: channel plus the sorted fragment ids."""
    return channel_id, tuple(sorted(fragment_ids))


class ProcessedSetStore(Protocol):
    """What the Detector needs from a processed-set cache."""

    def get(self, key: CacheKey) -> str | None: ...

    def put(self, key: CacheKey, value: str) -> None: ...


class ProcessedSetCache:
    """Maps fragment-set keys to a message id or :data:`REJECTED`.

    Entries expire after *ttl_seconds* and the least recently used entry is
    evicted once *max_entries* is reached. Eviction can only cause a
    redundant re-evaluation. Safe to share between threads.
    """

    def __init__(
        self,
        max_entries: int = 2048,
        ttl_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max(1, max_entries)
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[CacheKey, tuple[str, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self._ttl:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def put(self, key: CacheKey, value: str) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, ts) in self._entries.items() if now - ts > self._ttl]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, float]:
        return {
            "size": len(self),
            "max_entries": self._max_entries,
            "ttl_seconds": self._ttl,
        }
