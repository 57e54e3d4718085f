"""Durable cache of discovered package versions.

Persistence layout, one JSON document under ``Constants.VERSION_CACHE_KEY``::

    {"<pkg>": {"<version>": {"timestamp": <epoch ms>}}}

Staleness is decided at read time against the caller's TTL; nothing is ever
expired from storage. Storage problems degrade to an empty cache or a
skipped write and are never raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from ..common.clock import Clock, now_ms
from ..common.logging_utils import extra_context, is_debug_enabled, Timer
from ..constants import Constants
from ..errors import VersionSourceError
from ..storage import KeyValueStore
from .source import VersionSource

logger = logging.getLogger(__name__)

CacheDocument = Dict[str, Dict[str, Dict[str, Any]]]


class VersionCache:
    """Package name -> known versions with discovery timestamps."""

    def __init__(
        self,
        store: KeyValueStore,
        source: VersionSource,
        clock: Optional[Clock] = None,
        key: str = Constants.VERSION_CACHE_KEY,
    ):
        """Initialize the version cache.

        Args:
            store: Durable key-value store holding the cache document.
            source: Authoritative source consulted for ``latest``.
            clock: Returns epoch milliseconds; defaults to wall time.
            key: Storage key of the cache document.
        """
        self._store = store
        self._source = source
        self._clock = clock or now_ms
        self._key = key
        self._background: Set[asyncio.Task] = set()

    def read_all(self) -> CacheDocument:
        """Return the persisted mapping; missing or corrupt data reads as empty."""
        try:
            raw = self._store.get_item(self._key)
            if not raw:
                return {}
            data = json.loads(raw)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Failed to read version cache: %s", exc)
            return {}

        if not isinstance(data, dict):
            return {}
        cleaned: CacheDocument = {}
        for pkg, versions in data.items():
            if not isinstance(versions, dict):
                continue
            entries = {
                str(version): entry
                for version, entry in versions.items()
                if isinstance(entry, dict) and isinstance(entry.get("timestamp"), (int, float))
            }
            if entries:
                cleaned[str(pkg)] = entries
        return cleaned

    def _persist(self, document: CacheDocument) -> None:
        try:
            self._store.set_item(self._key, json.dumps(document))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Failed to write version cache: %s", exc)

    def write(self, pkg: str, version: str) -> None:
        """Record ``version`` of ``pkg`` as discovered now.

        Other versions already recorded for ``pkg`` are preserved. The
        read-modify-write has no suspension point, so it is atomic with
        respect to other coroutines on the loop.
        """
        document = self.read_all()
        document.setdefault(pkg, {})[version] = {"timestamp": self._clock()}
        self._persist(document)

    def cached_versions(self, pkg: str) -> Dict[str, int]:
        """Return ``{version: discovered_at_ms}`` for ``pkg``."""
        return {
            version: int(entry["timestamp"])
            for version, entry in self.read_all().get(pkg, {}).items()
        }

    def cached_latest(self, pkg: str) -> Optional[str]:
        """Most recently discovered version of ``pkg``, regardless of age."""
        versions = self.cached_versions(pkg)
        if not versions:
            return None
        return max(versions, key=lambda v: versions[v])

    def evict(self, pkg: str, version: str = Constants.WILDCARD) -> None:
        """Forget one version of ``pkg``, or all of them for the wildcard."""
        document = self.read_all()
        if pkg not in document:
            return
        if version == Constants.WILDCARD:
            del document[pkg]
        else:
            document[pkg].pop(version, None)
            if not document[pkg]:
                del document[pkg]
        self._persist(document)
        logger.info("Cleared version cache for %s@%s", pkg, version)

    def clear(self) -> None:
        """Drop the whole persisted cache."""
        try:
            self._store.remove_item(self._key)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Failed to clear version cache: %s", exc)

    async def fetch_authoritative(self, pkg: str) -> str:
        """Ask the authoritative source for the current latest version.

        Raises:
            VersionSourceError: The lookup failed or returned no tag.
        """
        try:
            latest = await asyncio.to_thread(self._source.fetch_latest, pkg)
        except VersionSourceError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise VersionSourceError(pkg, str(exc)) from exc
        if not latest:
            raise VersionSourceError(pkg, "no latest tag")
        return latest

    async def resolve_latest(
        self,
        pkg: str,
        ttl_ms: int = Constants.DEFAULT_CACHE_TTL_MS,
        revalidate: bool = True,
    ) -> str:
        """Resolve ``latest`` for ``pkg``, preferring a fresh cached version.

        A fresh hit returns immediately; with ``revalidate`` a background
        task checks the source and records a newer version for the next call.
        Otherwise the source is queried synchronously and the result cached.

        Raises:
            VersionSourceError: Only on the synchronous path.
        """
        versions = self.cached_versions(pkg)
        if versions:
            cached = max(versions, key=lambda v: versions[v])
            age = self._clock() - versions[cached]
            if age < ttl_ms:
                if is_debug_enabled(logger):
                    logger.debug("Version cache hit", extra=extra_context(
                        event="cache_hit", component="version_cache",
                        action="resolve_latest", target=f"{pkg}@{cached}", age_ms=age
                    ))
                if revalidate:
                    self._spawn_revalidation(pkg, cached)
                return cached

        with Timer() as t:
            latest = await self.fetch_authoritative(pkg)
        self.write(pkg, latest)
        logger.debug("Resolved %s@latest to %s in %sms", pkg, latest, t.duration_ms())
        return latest

    def _spawn_revalidation(self, pkg: str, cached: str) -> None:
        task = asyncio.get_running_loop().create_task(self._revalidate(pkg, cached))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _revalidate(self, pkg: str, cached: str) -> None:
        try:
            latest = await self.fetch_authoritative(pkg)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Background version check for %s failed: %s", pkg, exc)
            return
        if latest != cached:
            logger.info("Found new version %s@%s, cache updated", pkg, latest)
            self.write(pkg, latest)

    async def wait_revalidations(self) -> None:
        """Wait for in-flight background revalidations to settle."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
