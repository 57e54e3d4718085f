"""Load orchestration across the version cache, preloads, mirrors and registry.

A load resolves ``latest`` to a concrete version, reuses a fresh preload when
one exists, otherwise fetches through the mirrors, and finally registers
the instance. Resolved versions are snapshots: a background revalidation may
record a newer version before the next call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from .common.clock import Clock, now_ms
from .config import LoadOptions, Settings
from .constants import Constants
from .errors import UnknownInstanceError
from .events import EventBus
from .fetch.loader import LoadHandle, LoaderFactory, resolve_awaitable
from .fetch.mirrors import MirrorFetcher
from .health import HealthProbe, HealthReport
from .preload import (
    PRIORITY_IDLE,
    PreloadEntry,
    PreloadRequest,
    PreloadScheduler,
    ProgressCallback,
)
from .registry import InstanceRegistry, LoadedRemote
from .storage import JsonFileStore, KeyValueStore
from .versioning.cache import VersionCache
from .versioning.source import NpmRegistrySource, VersionSource

logger = logging.getLogger(__name__)

EVENT_LOADED = "remote:loaded"
EVENT_LOAD_FAILED = "remote:load-failed"
EVENT_UNLOADED = "remote:unloaded"


@dataclass(frozen=True)
class RemoteHandle:
    """A registered remote, as returned by :meth:`RemoteLoader.load`."""
    key: str
    name: str
    scope_id: str
    pkg: str
    version: str
    handle: LoadHandle
    from_preload: bool = False


class RemoteLoader:
    """Entry point wiring the caching, fetching and lifecycle services."""

    def __init__(
        self,
        loader_factory: LoaderFactory,
        store: KeyValueStore,
        source: Optional[VersionSource] = None,
        settings: Optional[Settings] = None,
        events: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
    ):
        settings = settings or Settings()
        clock = clock or now_ms
        self.settings = settings
        self.events = events or EventBus()
        self.version_cache = VersionCache(
            store, source or NpmRegistrySource(settings.registry_url), clock=clock
        )
        self.fetcher = MirrorFetcher(loader_factory, settings.mirror_templates)
        self.preloads = PreloadScheduler(
            self.version_cache, self.fetcher, ttl_ms=settings.preload_ttl_ms, clock=clock
        )
        self.registry = InstanceRegistry(self.version_cache, clock=clock)
        self.health = HealthProbe(
            self.version_cache,
            settings.mirror_templates,
            timeout_sec=settings.health_timeout_sec,
            healthy_latency_ms=settings.healthy_latency_ms,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls, loader_factory: LoaderFactory, settings: Optional[Settings] = None, **kwargs: Any
    ) -> "RemoteLoader":
        """Build a loader persisting its version cache at ``settings.storage_path``."""
        settings = settings or Settings.load()
        return cls(loader_factory, JsonFileStore(settings.storage_path), settings=settings, **kwargs)

    async def resolve_version(self, options: LoadOptions) -> str:
        if options.version != Constants.LATEST:
            return options.version
        return await self.version_cache.resolve_latest(
            options.pkg, options.cache_ttl_ms, options.revalidate
        )

    async def load(self, options: LoadOptions) -> RemoteHandle:
        """Resolve, fetch (or reuse a preload) and register a remote.

        Raises:
            VersionSourceError: ``latest`` could not be resolved.
            MirrorExhaustedError: No candidate URL could be loaded.
        """
        try:
            version = await self.resolve_version(options)
            preloaded = self.preloads.get(options.pkg, version)
            if preloaded is not None:
                scope_id, handle = preloaded.scope_id, preloaded.handle
            else:
                urls = self.fetcher.build_candidate_urls(options.pkg, version, options.local_fallback)
                result = await self.fetcher.load(
                    options.name, urls, options.retries, options.delay_ms, options.shared_overrides
                )
                scope_id, handle = result.scope_id, result.handle
        except Exception as exc:
            self.events.emit(EVENT_LOAD_FAILED, {"pkg": options.pkg, "error": str(exc)},
                             source=options.name)
            raise

        key = self.registry.register(options.name, scope_id, options.pkg, version, handle)
        remote = RemoteHandle(
            key=key,
            name=options.name,
            scope_id=scope_id,
            pkg=options.pkg,
            version=version,
            handle=handle,
            from_preload=preloaded is not None,
        )
        self.events.emit(EVENT_LOADED, remote, source=options.name)
        return remote

    async def load_module(self, key: str, module_path: str) -> Any:
        """Load ``module_path`` from a registered remote and record it.

        Raises:
            UnknownInstanceError: ``key`` is not registered.
        """
        instance = self.registry.get(key)
        if instance is None:
            raise UnknownInstanceError(key)
        module = await resolve_awaitable(
            instance.handle.load_module(f"{instance.scope_id}/{module_path}")
        )
        self.registry.register_module(key, module_path)
        return module

    async def preload(
        self, options: LoadOptions, priority: str = PRIORITY_IDLE, force: bool = False
    ) -> Optional[PreloadEntry]:
        return await self.preloads.preload(options, priority, force)

    async def preload_batch(
        self, requests: Sequence[PreloadRequest], on_progress: Optional[ProgressCallback] = None
    ) -> List[Optional[PreloadEntry]]:
        return await self.preloads.preload_batch(requests, on_progress)

    async def unload(
        self, name: str, pkg: str, version: str = Constants.WILDCARD, clear_cache: bool = False
    ) -> bool:
        removed = await self.registry.unload(name, pkg, version, clear_cache)
        if removed:
            self.events.emit(EVENT_UNLOADED, {"name": name, "pkg": pkg, "version": version},
                             source=name)
        return removed

    async def unload_all(self, clear_all_cache: bool = False) -> None:
        await self.registry.unload_all(clear_all_cache)
        self.events.emit(EVENT_UNLOADED, {"name": Constants.WILDCARD})

    def list_loaded(self) -> List[LoadedRemote]:
        return self.registry.list_loaded()

    async def health_report(self, remotes: Sequence[LoadOptions]) -> HealthReport:
        return await self.health.report(remotes)

    async def close(self) -> None:
        """Release the health probe session and wait for revalidations."""
        await self.version_cache.wait_revalidations()
        await self.health.stop()
