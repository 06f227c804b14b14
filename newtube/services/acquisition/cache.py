"""Read-through cache over the catalog.

Entries are stamped with the catalog generation observed before their
loader ran. A point entry (keyed on one or more entities) stays valid
until any of its entities is written; a collection entry is stale after
any write, since its membership cannot be recomputed cheaply.

The internal map is guarded by a plain lock that is never held across an
await, so readers and the catalog's invalidation callbacks never block on
catalog I/O.
"""

import threading
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from newtube.core.logging import get_logger
from newtube.services.acquisition.catalog import Catalog

logger = get_logger(__name__)

T = TypeVar("T")

CacheKey = tuple[Hashable, ...]


def video_key(video_id: str) -> CacheKey:
    """Key for a point lookup of one video."""
    return ("video", video_id)


def comments_key(video_id: str) -> CacheKey:
    """Key for the comment tree of one video."""
    return ("comments", video_id)


def collection_key(query: str, *params: Hashable) -> CacheKey:
    """Key for a collection query with its parameters."""
    return ("collection", query, params)


@dataclass(frozen=True)
class _Entry:
    value: Any
    generation: int
    entities: frozenset[str] | None


@dataclass(frozen=True)
class CacheStats:
    """Counters for monitoring."""

    size: int
    capacity: int
    hits: int
    misses: int


class ReadThroughCache:
    """LRU read-through cache invalidated by catalog writes.

    Example:
        >>> cache = ReadThroughCache(catalog, capacity=2048)
        >>> video = await cache.get(
        ...     video_key(vid), lambda: catalog.get_video(vid), entities=[vid]
        ... )
    """

    def __init__(self, catalog: Catalog, capacity: int = 2048) -> None:
        """Initialize ReadThroughCache and subscribe to catalog writes.

        Args:
            catalog: Catalog whose generations stamp the entries
            capacity: Maximum number of entries before LRU eviction
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.catalog = catalog
        self.capacity = capacity
        self._entries: OrderedDict[CacheKey, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        catalog.add_listener(self.invalidate)

    async def get(
        self,
        key: CacheKey,
        loader: Callable[[], Awaitable[T]],
        entities: Iterable[str] | None = None,
    ) -> T:
        """Return the cached value for ``key`` or load it through ``loader``.

        Args:
            key: Cache key
            loader: Catalog read producing the value
            entities: Entities the value depends on; None marks a
                collection value that any write invalidates

        Returns:
            The cached or freshly loaded value
        """
        scope = frozenset(entities) if entities is not None else None
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if self.catalog.is_current(entry.generation, entry.entities):
                    self._entries.move_to_end(key)
                    self._hits += 1
                    return entry.value
                del self._entries[key]
            self._misses += 1

        stamp = self.catalog.generation
        value = await loader()

        # A write that landed while the loader ran makes this value stale.
        if self.catalog.is_current(stamp, scope):
            with self._lock:
                self._entries[key] = _Entry(value, stamp, scope)
                self._entries.move_to_end(key)
                while len(self._entries) > self.capacity:
                    self._entries.popitem(last=False)
        return value

    def invalidate(self, entity_id: str | None = None) -> None:
        """Drop every entry touching ``entity_id`` and every collection entry.

        Args:
            entity_id: Written entity; None drops everything
        """
        with self._lock:
            if entity_id is None:
                dropped = len(self._entries)
                self._entries.clear()
            else:
                stale = [
                    key
                    for key, entry in self._entries.items()
                    if entry.entities is None or entity_id in entry.entities
                ]
                for key in stale:
                    del self._entries[key]
                dropped = len(stale)
        if dropped:
            logger.debug("Cache invalidated", entity_id=entity_id, dropped=dropped)

    def clear(self) -> None:
        """Drop all entries."""
        self.invalidate(None)

    def stats(self) -> CacheStats:
        """Current counters."""
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                capacity=self.capacity,
                hits=self._hits,
                misses=self._misses,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


__all__ = [
    "CacheKey",
    "CacheStats",
    "ReadThroughCache",
    "collection_key",
    "comments_key",
    "video_key",
]
