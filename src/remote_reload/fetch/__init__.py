"""Mirror selection and the module loader capability."""

from .loader import (
    DEFAULT_SHARED_CONFIG,
    LoadHandle,
    LoaderConfig,
    LoaderFactory,
    RemoteEntry,
    SharedLibrary,
    merge_shared,
)
from .mirrors import FetchAttempt, LoadResult, MirrorFetcher

__all__ = [
    "DEFAULT_SHARED_CONFIG",
    "LoadHandle",
    "LoaderConfig",
    "LoaderFactory",
    "RemoteEntry",
    "SharedLibrary",
    "merge_shared",
    "FetchAttempt",
    "LoadResult",
    "MirrorFetcher",
]
