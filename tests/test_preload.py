"""Tests for the preload scheduler."""

import asyncio

import pytest

from remote_reload.config import LoadOptions
from remote_reload.fetch.mirrors import MirrorFetcher
from remote_reload.preload import PRIORITY_HIGH, PreloadRequest, PreloadScheduler
from remote_reload.storage import MemoryStore
from remote_reload.versioning.cache import VersionCache

from conftest import FakeLoaderFactory


def _options(pkg="pkg-a", version="1.0.0", **kwargs):
    kwargs.setdefault("delay_ms", 0)
    return LoadOptions(name=f"{pkg}_scope", pkg=pkg, version=version, **kwargs)


@pytest.fixture
def version_cache(source, clock):
    return VersionCache(MemoryStore(), source, clock=clock)


@pytest.fixture
def scheduler(version_cache, loader_factory, clock):
    return PreloadScheduler(version_cache, MirrorFetcher(loader_factory), ttl_ms=1000, clock=clock)


class TestPreload:
    """Tests for single preloads."""

    def test_second_preload_within_ttl_reuses_entry(self, scheduler, loader_factory):
        """Two consecutive preloads of the same version fetch once."""
        async def _run():
            first = await scheduler.preload(_options())
            second = await scheduler.preload(_options())
            return first, second

        first, second = asyncio.run(_run())
        assert first is second
        assert len(loader_factory.calls) == 1

    def test_force_bypasses_and_rewrites(self, scheduler, loader_factory):
        async def _run():
            first = await scheduler.preload(_options(), PRIORITY_HIGH)
            second = await scheduler.preload(_options(), PRIORITY_HIGH, force=True)
            return first, second

        first, second = asyncio.run(_run())
        assert first is not second
        assert len(loader_factory.calls) == 2
        assert scheduler.get("pkg-a", "1.0.0") is second

    def test_expired_entry_is_refetched(self, scheduler, loader_factory, clock):
        asyncio.run(scheduler.preload(_options(), PRIORITY_HIGH))
        clock.advance(1001)
        assert scheduler.get("pkg-a", "1.0.0") is None
        asyncio.run(scheduler.preload(_options(), PRIORITY_HIGH))
        assert len(loader_factory.calls) == 2

    def test_different_version_is_refetched(self, scheduler, loader_factory):
        asyncio.run(scheduler.preload(_options(version="1.0.0"), PRIORITY_HIGH))
        entry = asyncio.run(scheduler.preload(_options(version="2.0.0"), PRIORITY_HIGH))
        assert entry.resolved_version == "2.0.0"
        assert len(loader_factory.calls) == 2

    def test_latest_is_resolved_and_matches_later_requests(self, scheduler, source):
        entry = asyncio.run(scheduler.preload(_options(version="latest", revalidate=False)))
        assert entry.resolved_version == "1.0.0"
        assert entry.requested_version == "latest"
        assert scheduler.get("pkg-a", "1.0.0") is entry
        assert scheduler.get("pkg-a", "latest") is entry

    def test_failure_returns_none(self, version_cache, clock):
        factory = FakeLoaderFactory(failing={
            "https://cdn.jsdelivr.net/npm/pkg-a@1.0.0/dist/remoteEntry.js",
            "https://unpkg.com/pkg-a@1.0.0/dist/remoteEntry.js",
        })
        scheduler = PreloadScheduler(version_cache, MirrorFetcher(factory), clock=clock)
        assert asyncio.run(scheduler.preload(_options(retries=1))) is None
        assert scheduler.status("pkg-a") is None

    def test_idle_priority_waits_for_idle_hook(self, version_cache, loader_factory, clock):
        order = []

        async def _idle():
            order.append("idle")

        scheduler = PreloadScheduler(
            version_cache, MirrorFetcher(loader_factory), clock=clock, idle_hook=_idle
        )
        asyncio.run(scheduler.preload(_options()))
        asyncio.run(scheduler.preload(_options(pkg="pkg-b"), PRIORITY_HIGH))
        assert order == ["idle"]


class TestBatchAndBookkeeping:
    """Tests for batch preload, cancel, clear and status."""

    def test_batch_reports_progress_for_every_request(self, version_cache, clock):
        factory = FakeLoaderFactory(failing={
            "https://cdn.jsdelivr.net/npm/pkg-bad@1.0.0/dist/remoteEntry.js",
            "https://unpkg.com/pkg-bad@1.0.0/dist/remoteEntry.js",
        })
        scheduler = PreloadScheduler(version_cache, MirrorFetcher(factory), clock=clock)
        progress = []
        requests = [
            PreloadRequest(_options("pkg-a")),
            PreloadRequest(_options("pkg-bad", retries=1), priority=PRIORITY_HIGH),
            PreloadRequest(_options("pkg-c")),
        ]

        results = asyncio.run(
            scheduler.preload_batch(requests, lambda done, total: progress.append((done, total)))
        )

        assert progress == [(1, 3), (2, 3), (3, 3)]
        assert results[1] is None
        assert results[0].pkg == "pkg-a"
        assert results[2].pkg == "pkg-c"

    def test_progress_callback_failure_does_not_break_batch(self, scheduler):
        def _explode(done, total):
            raise ValueError("ui went away")

        results = asyncio.run(scheduler.preload_batch([PreloadRequest(_options())], _explode))
        assert results[0] is not None

    def test_cancel_and_clear(self, scheduler):
        asyncio.run(scheduler.preload(_options("pkg-a"), PRIORITY_HIGH))
        asyncio.run(scheduler.preload(_options("pkg-b"), PRIORITY_HIGH))
        scheduler.cancel("pkg-a")
        scheduler.cancel("never-loaded")
        assert scheduler.status("pkg-a") is None
        assert scheduler.status("pkg-b") is not None
        scheduler.clear_all()
        assert scheduler.status("pkg-b") is None

    def test_status_reports_presence_not_freshness(self, scheduler, clock):
        asyncio.run(scheduler.preload(_options(), PRIORITY_HIGH))
        cached_at = clock.now
        clock.advance(10_000)
        status = scheduler.status("pkg-a")
        assert status.loaded is True
        assert status.timestamp == cached_at
