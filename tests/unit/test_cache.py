"""Tests for the TTL cache layer."""

from navtree.data.cache import TOP_LEVEL_KEY, CacheLayer, children_key
from navtree.data.models import CacheEntry
from navtree.data.persistence import DataStore


class TestCacheEntry:
    def test_expiry_boundary(self):
        entry = CacheEntry(key="k", timestamp=100.0, payload=[])

        assert not entry.is_expired(159.999, 60)
        assert entry.is_expired(160.0, 60)

    def test_serialized_timestamp_is_millis(self):
        entry = CacheEntry(key="k", timestamp=12.5, payload={"a": 1})
        data = entry.to_dict()

        assert data == {"timestamp": 12500, "data": {"a": 1}}
        assert CacheEntry.from_dict("k", data).timestamp == 12.5


class TestCacheLayer:
    def test_keys(self):
        assert TOP_LEVEL_KEY == "tree_top_level"
        assert children_key(42) == "children_42"

    def test_fresh_entry_is_returned(self, clock):
        cache = CacheLayer(ttl=60, clock=clock)
        cache.set("k", [1, 2])

        clock.advance(59.999)
        assert cache.get("k") == [1, 2]

    def test_expired_entry_is_deleted(self, clock):
        cache = CacheLayer(ttl=60, clock=clock)
        cache.set("k", [1, 2])

        clock.advance(60.001)
        assert cache.get("k") is None
        assert "k" not in cache

    def test_missing_key(self, clock):
        cache = CacheLayer(clock=clock)
        assert cache.get("nope") is None
        assert cache.stats()["misses"] == 1

    def test_rewrite_resets_age(self, clock):
        cache = CacheLayer(ttl=60, clock=clock)
        cache.set("k", "old")
        clock.advance(50)
        cache.set("k", "new")
        clock.advance(50)

        assert cache.get("k") == "new"

    def test_lru_eviction(self, clock):
        cache = CacheLayer(ttl=60, max_entries=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "b" not in cache
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.stats()["evictions"] == 1

    def test_sweep(self, clock):
        cache = CacheLayer(ttl=10, clock=clock)
        cache.set("old", 1)
        clock.advance(8)
        cache.set("young", 2)
        clock.advance(5)

        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_delete_and_clear(self, clock):
        cache = CacheLayer(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        assert "a" not in cache
        cache.clear()
        assert len(cache) == 0


class TestCacheWriteThrough:
    def test_survives_restart(self, clock, temp_data_dir):
        store = DataStore(temp_data_dir)
        CacheLayer(ttl=60, store=store, clock=clock).set(TOP_LEVEL_KEY, [{"id": 1}])

        reopened = CacheLayer(ttl=60, store=DataStore(temp_data_dir), clock=clock)
        assert reopened.get(TOP_LEVEL_KEY) == [{"id": 1}]

    def test_expired_file_is_removed(self, clock, temp_data_dir):
        store = DataStore(temp_data_dir)
        CacheLayer(ttl=60, store=store, clock=clock).set("k", [1])
        clock.advance(61)

        reopened = CacheLayer(ttl=60, store=store, clock=clock)
        assert reopened.get("k") is None
        assert store.load_cache("k") is None

    def test_malformed_file_is_a_miss(self, clock, temp_data_dir):
        store = DataStore(temp_data_dir)
        store.save_cache("k", {"stamp": "nope"})

        cache = CacheLayer(store=store, clock=clock)
        assert cache.get("k") is None
        assert store.list_cache_keys() == []

    def test_eviction_removes_file(self, clock, temp_data_dir):
        store = DataStore(temp_data_dir)
        cache = CacheLayer(max_entries=1, store=store, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        assert store.list_cache_keys() == ["b"]
