"""remote-reload: resolve, fetch and cache versioned remote modules.

The package resolves ``latest`` through a durable version cache, fetches
remote entries from ordered CDN mirrors with bounded retries, keeps a
short-lived preload cache, and tracks loaded instances for teardown.
"""

from .config import LoadOptions, Settings
from .errors import (
    MirrorExhaustedError,
    RemoteReloadError,
    UnknownInstanceError,
    VersionSourceError,
)
from .events import EventBus
from .fetch import LoadHandle, LoaderConfig, MirrorFetcher
from .health import HealthProbe, HealthStatus
from .preload import PreloadRequest, PreloadScheduler
from .registry import InstanceRegistry
from .remote import RemoteHandle, RemoteLoader
from .storage import JsonFileStore, KeyValueStore, MemoryStore
from .versioning import NpmRegistrySource, VersionCache

__all__ = [
    "LoadOptions",
    "Settings",
    "MirrorExhaustedError",
    "RemoteReloadError",
    "UnknownInstanceError",
    "VersionSourceError",
    "EventBus",
    "LoadHandle",
    "LoaderConfig",
    "MirrorFetcher",
    "HealthProbe",
    "HealthStatus",
    "PreloadRequest",
    "PreloadScheduler",
    "InstanceRegistry",
    "RemoteHandle",
    "RemoteLoader",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "NpmRegistrySource",
    "VersionCache",
]
