"""
Result Cache Tests
==================
"""

import pytest

from hidezone.boundary.cache import BoundaryQueryKey, RegionFingerprintKey, ResultCache
from hidezone.errors import CacheMiss


class TestResultCache:
    def test_get_missing_raises(self):
        cache = ResultCache(max_entries=2)
        with pytest.raises(CacheMiss):
            cache.get(RegionFingerprintKey("abc"))

    def test_lookup_missing_returns_none(self):
        assert ResultCache().lookup(BoundaryQueryKey("nowhere")) is None

    def test_least_recently_used_is_evicted(self):
        cache = ResultCache(max_entries=2)
        a, b, c = (RegionFingerprintKey(d) for d in "abc")
        cache.put(a, 1)
        cache.put(b, 2)
        cache.get(a)
        cache.put(c, 3)

        assert a in cache
        assert b not in cache
        assert cache.metrics()["evictions"] == 1

    def test_key_types_do_not_collide(self):
        cache = ResultCache()
        cache.put(BoundaryQueryKey("x"), "boundary")
        cache.put(RegionFingerprintKey("x"), "region")

        assert cache.lookup(BoundaryQueryKey("x")) == "boundary"
        assert cache.lookup(RegionFingerprintKey("x")) == "region"

    def test_invalidate_kind(self):
        cache = ResultCache()
        cache.put(BoundaryQueryKey("dc"), "boundary")
        cache.put(RegionFingerprintKey("a"), 1)
        cache.put(RegionFingerprintKey("b"), 2)

        assert cache.invalidate_kind(RegionFingerprintKey) == 2
        assert len(cache) == 1
        assert BoundaryQueryKey("dc") in cache

    def test_normalized_query(self):
        assert BoundaryQueryKey.normalized("  Washington \t DC ") == BoundaryQueryKey("washington dc")

    def test_metrics(self):
        cache = ResultCache(max_entries=4, name="test")
        cache.put(RegionFingerprintKey("a"), 1)
        cache.lookup(RegionFingerprintKey("a"))
        cache.lookup(RegionFingerprintKey("b"))

        assert cache.metrics() == {
            "size": 1,
            "max_entries": 4,
            "hits": 1,
            "misses": 1,
            "evictions": 0,
        }

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ResultCache(max_entries=0)
