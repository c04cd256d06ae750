"""
In-memory TTL cache.

Entries expire lazily: a `get` on an expired key deletes it and misses.
`sweep()` may be called periodically to bound memory, it is never needed
for correctness. An optional `maxsize` turns on LRU eviction on top of TTL.
"""
from __future__ import annotations
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TTLCache(Generic[T]):
    def __init__(
        self,
        default_ttl: float = 600,
        *,
        maxsize: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.maxsize = maxsize
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry[T]] = OrderedDict()

    def get(self, key: Hashable) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            return None
        if self.maxsize is not None:
            self._entries.move_to_end(key)
        return entry.data

    def set(self, key: Hashable, value: T, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(data=value, expires_at=self._clock() + ttl)
        self._entries.move_to_end(key)
        if self.maxsize is not None:
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired entry, returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
