"""Key -> (value, timestamp) cache with lazy TTL expiry and an optional LRU bound."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Iterable, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """In-memory cache used for generated options and loaded datasets.

    Expiry is checked on read; there is no background eviction. When
    ``max_entries`` is set, the least recently used entry is dropped once the
    bound is exceeded.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        # key -> (value, stored_at, ttl)
        self._data: "OrderedDict[str, Tuple[V, float, float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[V]:
        entry = self._data.get(key)
        if entry is None:
            self.misses += 1
            return None
        value, stored_at, ttl = entry
        if self._clock() - stored_at > ttl:
            del self._data[key]
            self.misses += 1
            return None
        self._data.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: str, value: V, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        if key in self._data:
            self._data.move_to_end(key)
        self._data[key] = (value, self._clock(), ttl)
        if self.max_entries is not None:
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)
                self.evictions += 1

    def invalidate(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def invalidate_where(self, predicate: Callable[[str], bool]) -> int:
        doomed = [k for k in self._data if predicate(k)]
        for k in doomed:
            del self._data[k]
        return len(doomed)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> Iterable[str]:
        return list(self._data.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def cache_info(self) -> Dict[str, Any]:
        return {
            "entries": len(self._data),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
        }
