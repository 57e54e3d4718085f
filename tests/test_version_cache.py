"""Tests for the durable version cache."""

import asyncio
import json

import pytest

from remote_reload.constants import Constants
from remote_reload.errors import VersionSourceError
from remote_reload.storage import KeyValueStore, MemoryStore
from remote_reload.versioning.cache import VersionCache

from conftest import FakeSource


class _BrokenStore(KeyValueStore):
    """Store whose every operation fails, like a full or locked disk."""

    def get_item(self, key):
        raise OSError("quota exceeded")

    def set_item(self, key, value):
        raise OSError("quota exceeded")

    def remove_item(self, key):
        raise OSError("quota exceeded")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store, source, clock):
    return VersionCache(store, source, clock=clock)


class TestReadWrite:
    """Tests for persisted layout and corruption handling."""

    def test_write_uses_documented_layout(self, cache, store, clock):
        cache.write("pkg-a", "1.0.0")
        document = json.loads(store.get_item(Constants.VERSION_CACHE_KEY))
        assert document == {"pkg-a": {"1.0.0": {"timestamp": clock.now}}}

    def test_write_preserves_other_versions(self, cache, clock):
        cache.write("pkg-a", "1.0.0")
        clock.advance(5)
        cache.write("pkg-a", "1.1.0")
        assert cache.cached_versions("pkg-a") == {"1.0.0": clock.now - 5, "1.1.0": clock.now}
        assert cache.cached_latest("pkg-a") == "1.1.0"

    def test_corrupt_storage_reads_empty(self, store, source, clock):
        store.set_item(Constants.VERSION_CACHE_KEY, "{not json")
        assert VersionCache(store, source, clock=clock).read_all() == {}

    def test_malformed_entries_are_skipped(self, store, source, clock):
        store.set_item(Constants.VERSION_CACHE_KEY, json.dumps({
            "ok": {"1.0.0": {"timestamp": 5}},
            "bad": ["1.0.0"],
            "partial": {"1.0.0": {"when": 5}},
        }))
        assert VersionCache(store, source, clock=clock).read_all() == {"ok": {"1.0.0": {"timestamp": 5}}}

    def test_storage_failures_are_swallowed(self, source, clock):
        cache = VersionCache(_BrokenStore(), source, clock=clock)
        assert cache.read_all() == {}
        cache.write("pkg-a", "1.0.0")
        cache.evict("pkg-a")
        cache.clear()

    def test_evict_single_and_wildcard(self, cache):
        cache.write("pkg-a", "1.0.0")
        cache.write("pkg-a", "2.0.0")
        cache.write("pkg-b", "1.0.0")
        cache.evict("pkg-a", "1.0.0")
        assert set(cache.cached_versions("pkg-a")) == {"2.0.0"}
        cache.evict("pkg-a")
        assert cache.cached_versions("pkg-a") == {}
        assert cache.cached_versions("pkg-b") != {}

    def test_clear(self, cache, store):
        cache.write("pkg-a", "1.0.0")
        cache.clear()
        assert store.get_item(Constants.VERSION_CACHE_KEY) is None


class TestResolveLatest:
    """Tests for TTL-based resolution and background revalidation."""

    def test_fresh_hit_skips_source(self, cache, source, clock):
        cache.write("pkg-a", "1.0.0")
        clock.advance(1)
        result = asyncio.run(cache.resolve_latest("pkg-a", ttl_ms=10, revalidate=False))
        assert result == "1.0.0"
        assert source.latest_calls == 0

    def test_stale_entry_queries_source(self, cache, source, clock):
        cache.write("pkg-a", "0.9.0")
        clock.advance(20)
        result = asyncio.run(cache.resolve_latest("pkg-a", ttl_ms=10, revalidate=False))
        assert result == "1.0.0"
        assert source.latest_calls == 1
        assert cache.cached_latest("pkg-a") == "1.0.0"

    def test_miss_writes_result(self, cache, source):
        result = asyncio.run(cache.resolve_latest("pkg-a"))
        assert result == "1.0.0"
        assert "1.0.0" in cache.cached_versions("pkg-a")

    def test_source_failure_on_sync_path_raises(self, store, clock):
        cache = VersionCache(store, FakeSource(latest=None), clock=clock)
        with pytest.raises(VersionSourceError):
            asyncio.run(cache.resolve_latest("pkg-a"))

    def test_unexpected_source_error_is_wrapped(self, store, clock):
        class _Exploding(FakeSource):
            def fetch_latest(self, pkg):
                raise RuntimeError("socket closed")

        cache = VersionCache(store, _Exploding(), clock=clock)
        with pytest.raises(VersionSourceError):
            asyncio.run(cache.resolve_latest("pkg-a"))

    def test_revalidation_updates_next_read_only(self, cache, source, clock):
        """The current call returns the cached version; the next sees the new one."""
        cache.write("pkg-a", "1.0.0")
        source.latest = "1.1.0"
        clock.advance(1)

        async def _run():
            first = await cache.resolve_latest("pkg-a", ttl_ms=1000, revalidate=True)
            await cache.wait_revalidations()
            clock.advance(1)
            second = await cache.resolve_latest("pkg-a", ttl_ms=1000, revalidate=False)
            return first, second

        first, second = asyncio.run(_run())
        assert first == "1.0.0"
        assert second == "1.1.0"
        assert source.latest_calls == 1

    def test_revalidation_failure_is_swallowed(self, store, clock):
        source = FakeSource(latest=None)
        cache = VersionCache(store, source, clock=clock)
        cache.write("pkg-a", "1.0.0")

        async def _run():
            result = await cache.resolve_latest("pkg-a", ttl_ms=1000, revalidate=True)
            await cache.wait_revalidations()
            return result

        assert asyncio.run(_run()) == "1.0.0"
        assert source.latest_calls == 1
        assert cache.cached_versions("pkg-a") == {"1.0.0": clock.now}
