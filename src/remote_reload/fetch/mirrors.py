"""Multi-mirror fetch with bounded per-mirror retries and ordered fallback."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from ..common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from ..constants import Constants
from ..errors import MirrorExhaustedError
from .loader import (
    LoadHandle,
    LoaderFactory,
    build_loader_config,
    merge_shared,
    resolve_awaitable,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchAttempt:
    """One try against one candidate URL."""
    url: str
    attempt: int
    ok: bool
    error: Optional[str] = None


@dataclass
class LoadResult:
    """A loaded remote scope and where it came from."""
    scope_id: str
    handle: LoadHandle
    url: str
    attempts: List[FetchAttempt] = field(default_factory=list)


def expand_templates(templates: Sequence[str], pkg: str, version: str) -> List[str]:
    """Substitute ``{pkg}`` and ``{version}`` into each template, in order."""
    return [
        template.replace("{pkg}", pkg).replace("{version}", version)
        for template in templates
    ]


class MirrorFetcher:
    """Build candidate URLs and obtain a load handle from the first that works.

    The fetcher never touches the version cache or instance registry;
    callers register what it returns.
    """

    def __init__(
        self,
        loader_factory: LoaderFactory,
        templates: Optional[Sequence[str]] = None,
    ):
        """Initialize the fetcher.

        Args:
            loader_factory: Builds a fresh loader instance per attempt.
            templates: URL templates with ``{pkg}`` and ``{version}``
                placeholders, tried in order.
        """
        self._loader_factory = loader_factory
        self.templates = list(templates if templates is not None else Constants.CDN_TEMPLATES)

    def build_candidate_urls(
        self, pkg: str, version: str, local_fallback: Optional[str] = None
    ) -> List[str]:
        """Expand every template for ``pkg@version``; the local fallback goes last."""
        urls = expand_templates(self.templates, pkg, version)
        if local_fallback:
            urls.append(local_fallback)
        return urls

    async def load(
        self,
        scope_id: str,
        candidate_urls: Sequence[str],
        retries_per_url: int = Constants.DEFAULT_RETRIES,
        delay_ms: int = Constants.DEFAULT_DELAY_MS,
        shared_config: Optional[Mapping[str, Any]] = None,
    ) -> LoadResult:
        """Return a handle bound to ``scope_id`` from the first URL that loads.

        Each URL gets ``retries_per_url`` attempts (at least one) separated by
        a fixed ``delay_ms``. There is no cancellation: a failing call only
        returns once every attempt on every candidate has run.

        Raises:
            MirrorExhaustedError: Every candidate failed.
        """
        shared = merge_shared(shared_config)
        retries = max(1, int(retries_per_url))
        attempts: List[FetchAttempt] = []

        for url in candidate_urls:
            target = safe_url(url)
            for attempt in range(1, retries + 1):
                with Timer() as t:
                    try:
                        config = build_loader_config(scope_id, url, shared)
                        handle = await resolve_awaitable(self._loader_factory(config))
                    except Exception as exc:  # pylint: disable=broad-exception-caught
                        attempts.append(FetchAttempt(url=url, attempt=attempt, ok=False, error=str(exc)))
                        logger.warning(
                            "Loading %s failed (attempt %d/%d): %s", target, attempt, retries, exc,
                            extra=extra_context(
                                event="fetch_attempt", component="mirror_fetcher",
                                action="load", outcome="failure", target=target,
                                attempt=attempt, duration_ms=t.duration_ms()
                            ),
                        )
                        if attempt < retries:
                            await asyncio.sleep(delay_ms / 1000)
                        continue

                attempts.append(FetchAttempt(url=url, attempt=attempt, ok=True))
                if is_debug_enabled(logger):
                    logger.debug("Remote loaded", extra=extra_context(
                        event="fetch_attempt", component="mirror_fetcher", action="load",
                        outcome="success", target=target, attempt=attempt,
                        duration_ms=t.duration_ms()
                    ))
                return LoadResult(scope_id=scope_id, handle=handle, url=url, attempts=attempts)

            logger.warning("Switching away from %s after %d attempts", target, retries)

        logger.error(
            "All %d load sources failed for %s", len(candidate_urls), scope_id,
            extra=extra_context(
                event="fetch_exhausted", component="mirror_fetcher", action="load",
                outcome="failure", target=scope_id
            ),
        )
        raise MirrorExhaustedError(candidate_urls, attempts)
