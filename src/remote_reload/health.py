"""Mirror reachability and remote health classification.

Probes are advisory and never raise: an unreachable mirror or a timeout is
reported as ``reachable=False`` with the latency observed up to the failure.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import aiohttp

from .common.clock import Clock, now_ms
from .common.logging_utils import extra_context, is_debug_enabled, safe_url
from .config import LoadOptions
from .constants import Constants
from .errors import VersionSourceError
from .fetch.loader import LoadHandle, resolve_awaitable
from .fetch.mirrors import expand_templates
from .versioning.cache import VersionCache

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health classification, ordered from best to worst."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}

_STATUS_ICONS = {
    HealthStatus.HEALTHY: "\U0001F7E2",
    HealthStatus.DEGRADED: "\U0001F7E1",
    HealthStatus.UNHEALTHY: "\U0001F534",
}


@dataclass(frozen=True)
class MirrorProbe:
    url: str
    reachable: bool
    latency_ms: int


@dataclass
class HealthDetails:
    mirror_reachable: bool
    remote_entry_valid: bool
    modules_loadable: bool
    error: Optional[str] = None


@dataclass
class HealthCheckResult:
    """Health of one remote; recomputed on every probe."""
    pkg: str
    version: str
    status: HealthStatus
    latency_ms: int
    chosen_mirror: str
    details: HealthDetails
    probes: List[MirrorProbe] = field(default_factory=list)


@dataclass
class HealthReport:
    timestamp: int
    overall: HealthStatus
    remotes: List[HealthCheckResult]


def format_health_status(status: HealthStatus) -> str:
    return f"{_STATUS_ICONS[status]} {status.value}"


def worst_status(statuses: Sequence[HealthStatus]) -> HealthStatus:
    """Worst of ``statuses``; an empty sequence is healthy."""
    return max(statuses, key=lambda s: s.rank, default=HealthStatus.HEALTHY)


class HealthProbe:
    """Measure mirror latency and classify remotes.

    Not consulted by the load path; operators call it directly or use it as
    an advisory signal before loading.
    """

    def __init__(
        self,
        version_cache: VersionCache,
        templates: Optional[Sequence[str]] = None,
        timeout_sec: float = Constants.HEALTH_TIMEOUT_SEC,
        healthy_latency_ms: int = Constants.HEALTHY_LATENCY_MS,
        clock: Optional[Clock] = None,
    ):
        self._version_cache = version_cache
        self.templates = list(templates if templates is not None else Constants.CDN_TEMPLATES)
        self._timeout_sec = timeout_sec
        self._healthy_latency_ms = healthy_latency_ms
        self._clock = clock or now_ms
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_sec),
                headers={"User-Agent": Constants.USER_AGENT},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HealthProbe":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _head(self, url: str) -> bool:
        if self._session is None:
            await self.start()
        async with self._session.head(url, allow_redirects=True) as response:
            return 200 <= response.status < 300

    async def check_mirror(self, url: str) -> MirrorProbe:
        """HEAD ``url`` with a hard timeout and measure the latency."""
        if self._session is None:
            await self.start()
        start = time.perf_counter()
        try:
            reachable = await asyncio.wait_for(self._head(url), timeout=self._timeout_sec)
        except asyncio.TimeoutError:
            reachable = False
        except Exception as exc:  # pylint: disable=broad-exception-caught
            reachable = False
            if is_debug_enabled(logger):
                logger.debug("Mirror probe failed", extra=extra_context(
                    event="probe", component="health", action="check_mirror",
                    outcome="error", target=safe_url(url), error=str(exc)
                ))
        latency = int(round((time.perf_counter() - start) * 1000))
        return MirrorProbe(url=url, reachable=reachable, latency_ms=latency)

    async def _resolve_version(self, options: LoadOptions) -> str:
        if options.version != Constants.LATEST:
            return options.version
        try:
            return await self._version_cache.fetch_authoritative(options.pkg)
        except VersionSourceError as exc:
            logger.warning("Could not resolve %s@latest for health check: %s", options.pkg, exc)
            return options.version

    async def check_remote(
        self,
        options: LoadOptions,
        handle: Optional[LoadHandle] = None,
        modules: Sequence[str] = (),
    ) -> HealthCheckResult:
        """Probe every mirror for ``options.pkg`` and classify the remote.

        Unhealthy when no mirror answers; otherwise healthy when the fastest
        reachable mirror answers under the latency threshold, else degraded.
        When ``handle`` and ``modules`` are given, each module is test-loaded.
        """
        version = await self._resolve_version(options)
        urls = expand_templates(self.templates, options.pkg, version)
        probes = list(await asyncio.gather(*(self.check_mirror(url) for url in urls)))

        reachable = [p for p in probes if p.reachable]
        pool = reachable or probes
        best = min(pool, key=lambda p: p.latency_ms) if pool else None

        if not reachable:
            status = HealthStatus.UNHEALTHY
        elif best is not None and best.latency_ms < self._healthy_latency_ms:
            status = HealthStatus.HEALTHY
        else:
            status = HealthStatus.DEGRADED

        # Reachability alone does not make the entry valid; a loaded handle does.
        entry_valid = bool(reachable) and handle is not None
        modules_loadable = False
        if handle is not None and modules:
            checks = [
                await self.check_module_loadable(options.name, path, handle)
                for path in modules
            ]
            modules_loadable = all(checks)

        return HealthCheckResult(
            pkg=options.pkg,
            version=version,
            status=status,
            latency_ms=best.latency_ms if best else 0,
            chosen_mirror=best.url if best else "",
            details=HealthDetails(
                mirror_reachable=bool(reachable),
                remote_entry_valid=entry_valid,
                modules_loadable=modules_loadable,
                error=None if reachable else "no mirror reachable",
            ),
            probes=probes,
        )

    async def check_module_loadable(
        self, scope_id: str, module_path: str, handle: Optional[LoadHandle]
    ) -> bool:
        """Try loading ``scope_id/module_path``; any failure reads as False."""
        loader = getattr(handle, "load_module", None)
        if not callable(loader):
            return False
        try:
            module = await resolve_awaitable(loader(f"{scope_id}/{module_path}"))
        except Exception:  # pylint: disable=broad-exception-caught
            return False
        return module is not None

    async def report(self, remotes: Sequence[LoadOptions]) -> HealthReport:
        """Probe ``remotes`` concurrently; the overall status is the worst one."""
        results = list(await asyncio.gather(*(self.check_remote(r) for r in remotes)))
        return HealthReport(
            timestamp=self._clock(),
            overall=worst_status([r.status for r in results]),
            remotes=results,
        )
