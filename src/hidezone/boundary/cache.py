"""
Result Cache
============

Bounded memo table shared by the boundary resolver and the region engine.

Keys are typed so that cache purposes can never collide:
    - BoundaryQueryKey(query)        -> resolved base polygon
    - RegionFingerprintKey(digest)   -> a finished derivation

Design Rules:
    - Fixed maximum size (drops least recently used on overflow)
    - Last writer wins; values are pure functions of their key
    - A miss is signalled internally with CacheMiss, callers outside this
      package use `lookup`, which returns None instead
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional, Type, Union

from hidezone.errors import CacheMiss


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundaryQueryKey:
    """Normalized free-text place query."""

    query: str

    @classmethod
    def normalized(cls, raw: str) -> "BoundaryQueryKey":
        return cls(" ".join(raw.split()).casefold())


@dataclass(frozen=True)
class RegionFingerprintKey:
    """Digest of everything a derivation depends on."""

    digest: str


CacheKey = Union[BoundaryQueryKey, RegionFingerprintKey]


class ResultCache:
    """
    Thread-safe LRU cache with typed keys.

    Attributes:
        name: Label used in logs and metrics
        max_entries: Maximum number of entries kept

    Example:
        cache = ResultCache(max_entries=64, name="boundary")
        cache.put(BoundaryQueryKey.normalized("Washington DC"), polygon)
        polygon = cache.lookup(BoundaryQueryKey.normalized("washington  dc"))
    """

    def __init__(self, max_entries: int = 128, name: str = "cache") -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self.name = name
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> Any:
        """
        Return the cached value.

        Raises:
            CacheMiss: If the key is absent
        """
        with self._lock:
            if key not in self._entries:
                self._misses += 1
                raise CacheMiss(key)
            self._entries.move_to_end(key)
            self._hits += 1
            return self._entries[key]

    def lookup(self, key: CacheKey) -> Optional[Any]:
        try:
            value = self.get(key)
        except CacheMiss:
            return None
        logger.debug(f"{self.name} cache hit: {key}")
        return value

    def put(self, key: CacheKey, value: Any) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def invalidate(self, key: CacheKey) -> bool:
        """Drop one entry. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_kind(self, kind: Type) -> int:
        """Drop every entry whose key is of type `kind`."""
        with self._lock:
            stale = [k for k in self._entries if isinstance(k, kind)]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.info(f"{self.name} cache: invalidated {len(stale)} {kind.__name__} entries")
        return len(stale)

    def clear(self) -> int:
        """Drop everything. Returns the number of entries removed."""
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
        if cleared:
            logger.info(f"{self.name} cache: cleared {cleared} entries")
        return cleared

    def metrics(self) -> dict:
        """
        Get cache metrics for observability.

        Returns:
            Dict with size, max_entries, hits, misses, evictions
        """
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }
