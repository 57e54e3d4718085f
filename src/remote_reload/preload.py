"""Short-lived cache of preloaded remotes and idle-time scheduling.

Preloading is advisory: failures are logged and reported as ``None``, never
raised. Cancelling only drops cache entries; an in-flight fetch runs on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .common.clock import Clock, now_ms
from .config import LoadOptions
from .constants import Constants
from .fetch.loader import LoadHandle
from .fetch.mirrors import MirrorFetcher
from .versioning.cache import VersionCache

logger = logging.getLogger(__name__)

PRIORITY_HIGH = "high"
PRIORITY_IDLE = "idle"

IdleHook = Callable[[], Awaitable[None]]
ProgressCallback = Callable[[int, int], None]


@dataclass
class PreloadEntry:
    """A fetched remote kept for reuse by later loads."""
    pkg: str
    requested_version: str
    resolved_version: str
    scope_id: str
    handle: LoadHandle
    cached_at: int

    def matches(self, version: str) -> bool:
        return version in (self.resolved_version, self.requested_version)


@dataclass(frozen=True)
class PreloadStatus:
    loaded: bool
    timestamp: int


@dataclass(frozen=True)
class PreloadRequest:
    """One item of a batch preload."""
    options: LoadOptions
    priority: str = PRIORITY_IDLE
    force: bool = False


async def _minimal_delay() -> None:
    await asyncio.sleep(Constants.IDLE_DELAY_SEC)


class PreloadScheduler:
    """Fetch remotes ahead of need and hand them out while fresh."""

    def __init__(
        self,
        version_cache: VersionCache,
        fetcher: MirrorFetcher,
        ttl_ms: int = Constants.PRELOAD_TTL_MS,
        clock: Optional[Clock] = None,
        idle_hook: Optional[IdleHook] = None,
    ):
        """Initialize the scheduler.

        Args:
            version_cache: Resolves ``latest`` requests.
            fetcher: Obtains load handles.
            ttl_ms: How long a preloaded entry may be reused.
            clock: Returns epoch milliseconds.
            idle_hook: Awaited before idle-priority work; a minimal timer
                is used when the host provides no idle signal.
        """
        self._version_cache = version_cache
        self._fetcher = fetcher
        self._ttl_ms = ttl_ms
        self._clock = clock or now_ms
        self._idle_hook = idle_hook or _minimal_delay
        self._entries: Dict[str, PreloadEntry] = {}

    def get(self, pkg: str, version: str) -> Optional[PreloadEntry]:
        """Return a fresh entry for ``pkg`` at ``version``; expired ones are dropped."""
        entry = self._entries.get(pkg)
        if entry is None or not entry.matches(version):
            return None
        if self._clock() - entry.cached_at > self._ttl_ms:
            del self._entries[pkg]
            return None
        return entry

    async def preload(
        self,
        options: LoadOptions,
        priority: str = PRIORITY_IDLE,
        force: bool = False,
    ) -> Optional[PreloadEntry]:
        """Fetch ``options.pkg`` ahead of time, reusing a fresh entry unless forced."""
        if not force:
            cached = self.get(options.pkg, options.version)
            if cached is not None:
                return cached

        if priority != PRIORITY_HIGH:
            await self._idle_hook()
        return await self._run(options)

    async def _run(self, options: LoadOptions) -> Optional[PreloadEntry]:
        try:
            version = options.version
            if version == Constants.LATEST:
                version = await self._version_cache.resolve_latest(
                    options.pkg, options.cache_ttl_ms, options.revalidate
                )
            urls = self._fetcher.build_candidate_urls(options.pkg, version, options.local_fallback)
            result = await self._fetcher.load(
                options.name, urls, options.retries, options.delay_ms, options.shared_overrides
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Preload of %s@%s failed: %s", options.pkg, options.version, exc)
            return None

        entry = PreloadEntry(
            pkg=options.pkg,
            requested_version=options.version,
            resolved_version=version,
            scope_id=result.scope_id,
            handle=result.handle,
            cached_at=self._clock(),
        )
        self._entries[options.pkg] = entry
        return entry

    async def preload_batch(
        self,
        requests: Sequence[PreloadRequest],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[Optional[PreloadEntry]]:
        """Preload concurrently, reporting ``(completed, total)`` as each settles."""
        total = len(requests)
        completed = 0

        async def _one(request: PreloadRequest) -> Optional[PreloadEntry]:
            nonlocal completed
            try:
                return await self.preload(request.options, request.priority, request.force)
            finally:
                completed += 1
                if on_progress is not None:
                    try:
                        on_progress(completed, total)
                    except Exception:  # pylint: disable=broad-exception-caught
                        logger.exception("Preload progress callback failed")

        return list(await asyncio.gather(*(_one(r) for r in requests)))

    def cancel(self, pkg: str) -> None:
        self._entries.pop(pkg, None)

    def clear_all(self) -> None:
        self._entries.clear()

    def status(self, pkg: str) -> Optional[PreloadStatus]:
        """Report presence of an entry; freshness is not rechecked."""
        entry = self._entries.get(pkg)
        if entry is None:
            return None
        return PreloadStatus(loaded=True, timestamp=entry.cached_at)
