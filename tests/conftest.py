"""Shared fakes for remote_reload tests."""

from typing import Dict, List, Optional

import pytest

from remote_reload.errors import VersionSourceError
from remote_reload.fetch.loader import LoadHandle, LoaderConfig


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeSource:
    """Version source returning a configurable latest tag and counting calls."""

    def __init__(self, latest: Optional[str] = "1.0.0", versions: Optional[List[str]] = None):
        self.latest = latest
        self.versions = versions or []
        self.latest_calls = 0

    def fetch_latest(self, pkg: str) -> str:
        self.latest_calls += 1
        if self.latest is None:
            raise VersionSourceError(pkg, "no latest dist-tag")
        return self.latest

    def fetch_versions(self, pkg: str) -> List[str]:
        return list(self.versions)


class FakeHandle(LoadHandle):
    """Load handle recording module requests and cleanup calls."""

    def __init__(self, config: Optional[LoaderConfig] = None, fail_cleanup: bool = False):
        self.config = config
        self.requests: List[str] = []
        self.cleanup_calls = 0
        self.fail_cleanup = fail_cleanup

    @property
    def entry(self) -> Optional[str]:
        return self.config.remotes[0].entry if self.config else None

    def load_module(self, request: str):
        self.requests.append(request)
        return {"default": request}

    async def cleanup(self):
        self.cleanup_calls += 1
        if self.fail_cleanup:
            raise RuntimeError("cleanup exploded")


class FakeLoaderFactory:
    """Loader factory failing for URLs listed in ``failing``."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls: List[LoaderConfig] = []
        self.handles: Dict[str, FakeHandle] = {}

    def __call__(self, config: LoaderConfig) -> FakeHandle:
        self.calls.append(config)
        url = config.remotes[0].entry
        if url in self.failing:
            raise ConnectionError(f"cannot reach {url}")
        handle = FakeHandle(config)
        self.handles[url] = handle
        return handle


@pytest.fixture
def clock():
    """Create a fresh clock for each test."""
    return FakeClock()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def loader_factory():
    return FakeLoaderFactory()
