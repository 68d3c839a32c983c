"""In-process key/value cache injected into services that read hot records."""

import threading
from typing import Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")


class KeyValueCache(Generic[V]):
    """
    Capacity-less key -> value map.

    Services populate it on read-through (``get_or_load``) and invalidate entries
    when they write the underlying record. There is no eviction.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, V] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._entries[key] = value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_or_load(self, key: str, loader: Callable[[], Optional[V]]) -> Optional[V]:
        """
        Returns the cached value, loading and caching it on a miss.

        A loader result of None is not cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.put(key, value)
        return value

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
