"""
Bounded caches used by StorageBackend.

LRUCache   - key -> value map, least-recently-accessed entry evicted first.
CacheSet   - bounded membership set, oldest insertion evicted first.

Neither is thread-safe; StorageBackend is owned by a single caller.
"""

from collections import OrderedDict
from typing import Generic, Hashable, Iterator, Optional, TypeVar

from loguru import logger

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Fixed-capacity map with access-order eviction.

    Both get() and put() mark the key as most recently used. When put()
    pushes the size over max_size, the least recently used entry is dropped.
    """

    def __init__(self, max_size: int, name: str = "lru") -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive; got {max_size}")
        self.max_size = max_size
        self.name = name
        self._entries: "OrderedDict[K, V]" = OrderedDict()
        self.evictions = 0

    def get(self, key: K) -> Optional[V]:
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    def put(self, key: K, value: V) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug(f"{self.name}: evicted {evicted!r}")

    def pop(self, key: K) -> Optional[V]:
        return self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list:
        """Keys from least to most recently used."""
        return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        # Membership test does not count as an access.
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class CacheSet(Generic[K]):
    """
    Bounded set of keys.

    Adding a key already present refreshes it; once more than max_size keys
    are held, the one added longest ago is forgotten.
    """

    def __init__(self, max_size: int, name: str = "set") -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive; got {max_size}")
        self.max_size = max_size
        self.name = name
        self._keys: "OrderedDict[K, None]" = OrderedDict()

    def add(self, key: K) -> None:
        self._keys[key] = None
        self._keys.move_to_end(key)

        while len(self._keys) > self.max_size:
            evicted, _ = self._keys.popitem(last=False)
            logger.debug(f"{self.name}: forgot {evicted!r}")

    def discard(self, key: K) -> None:
        self._keys.pop(key, None)

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._keys))

    def __len__(self) -> int:
        return len(self._keys)
