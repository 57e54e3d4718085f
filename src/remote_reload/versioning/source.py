"""Authoritative version lookups against the npm registry."""

from __future__ import annotations

import logging
import urllib.parse
from typing import List, Protocol

from ..common.http_client import get_json
from ..common.logging_utils import extra_context, is_debug_enabled
from ..constants import Constants
from ..errors import VersionSourceError

logger = logging.getLogger(__name__)


class VersionSource(Protocol):
    """Anything able to report the published versions of a package."""

    def fetch_latest(self, pkg: str) -> str:
        """Return the current ``latest`` tag or raise VersionSourceError."""

    def fetch_versions(self, pkg: str) -> List[str]:
        """Return every published version, or an empty list."""


class NpmRegistrySource:
    """Read ``dist-tags`` and ``versions`` from an npm registry packument."""

    def __init__(self, base_url: str = Constants.REGISTRY_URL_NPM):
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"

    def _packument_url(self, pkg: str) -> str:
        # Scoped names keep "@" but escape the slash, as the registry expects.
        return f"{self.base_url}{urllib.parse.quote(pkg, safe='@')}"

    def fetch_latest(self, pkg: str) -> str:
        status_code, _, data = get_json(self._packument_url(pkg))
        if status_code != 200 or not isinstance(data, dict):
            raise VersionSourceError(pkg, f"registry returned status {status_code}")

        latest = (data.get("dist-tags") or {}).get("latest")
        if not latest:
            raise VersionSourceError(pkg, "no latest dist-tag")
        if is_debug_enabled(logger):
            logger.debug("Resolved latest tag", extra=extra_context(
                event="resolve", component="version_source", action="fetch_latest",
                outcome="success", target=f"{pkg}@{latest}"
            ))
        return str(latest)

    def fetch_versions(self, pkg: str) -> List[str]:
        status_code, _, data = get_json(self._packument_url(pkg))
        if status_code != 200 or not isinstance(data, dict):
            return []
        return list((data.get("versions") or {}).keys())
