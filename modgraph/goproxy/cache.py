"""
Bounded LRU cache for proxy lookups.

One instance per lookup kind, owned by a GoProxyClient, so that the cache
lives exactly as long as the run that created the client.
"""

from collections import OrderedDict
from threading import Lock
from typing import Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedCache(Generic[K, V]):
    """
    Thread-safe LRU cache with a fixed capacity.

    Usage:
        cache: BoundedCache[tuple[str, str], ModuleInfo] = BoundedCache(maxsize=1000)

        value = cache.get(key)
        if value is None:
            value = await fetch(key)
            cache.set(key, value)

    A ``maxsize`` of 0 disables caching.
    """

    def __init__(self, maxsize: int = 1000) -> None:
        self.maxsize = maxsize
        self._cache: OrderedDict[K, V] = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: K) -> V | None:
        with self._lock:
            if key not in self._cache:
                self._misses += 1
                return None
            self._cache.move_to_end(key)
            self._hits += 1
            return self._cache[key]

    def set(self, key: K, value: V) -> None:
        if self.maxsize <= 0:
            return
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            while len(self._cache) >= self.maxsize:
                self._cache.popitem(last=False)
            self._cache[key] = value

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def stats(self) -> dict[str, int]:
        """Hit/miss counters and current size."""
        with self._lock:
            return {"size": len(self._cache), "hits": self._hits, "misses": self._misses}
