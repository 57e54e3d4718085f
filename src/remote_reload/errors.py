"""Exception hierarchy for remote resolution and loading."""

from __future__ import annotations

from typing import List, Sequence


class RemoteReloadError(Exception):
    """Base class for all errors raised by remote_reload."""


class VersionSourceError(RemoteReloadError):
    """The authoritative version source failed or returned no latest tag."""

    def __init__(self, pkg: str, reason: str):
        self.pkg = pkg
        self.reason = reason
        super().__init__(f"Unable to resolve latest version of {pkg}: {reason}")


class MirrorExhaustedError(RemoteReloadError):
    """Every candidate URL was tried with all of its retries and none loaded."""

    def __init__(self, urls: Sequence[str], attempts: Sequence["object"] = ()):
        self.urls: List[str] = list(urls)
        self.attempts = list(attempts)
        joined = ", ".join(self.urls) if self.urls else "<none>"
        super().__init__(
            f"All {len(self.urls)} load sources failed: {joined}"
        )


class UnknownInstanceError(RemoteReloadError):
    """A module was requested for a remote instance that is not registered."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"No remote instance registered under {key}")
