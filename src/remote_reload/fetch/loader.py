"""Module loader capability consumed by the fetcher, registry and probes.

The loader primitive that actually instantiates remote code lives outside
this package. It is reached through a factory that takes a
:class:`LoaderConfig` and returns a :class:`LoadHandle` (or an awaitable of
one). Handles expose ``load_module(request)`` and, optionally, ``cleanup()``;
either may be sync or async.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from ..constants import Constants


@dataclass(frozen=True)
class SharedLibrary:
    """Sharing rules for a host library; False ``required_version`` disables checks."""
    singleton: bool = True
    eager: bool = True
    required_version: Union[str, bool] = False


@dataclass(frozen=True)
class RemoteEntry:
    """A remote scope and the URL of its entry artifact."""
    name: str
    entry: str


@dataclass
class LoaderConfig:
    """Construction parameters for a single loader instance."""
    identity: str
    remotes: List[RemoteEntry]
    shared: Dict[str, SharedLibrary] = field(default_factory=dict)


# Host framework libraries are process-wide singletons, loaded eagerly, and
# never re-validated against the remote's declared requirement.
DEFAULT_SHARED_CONFIG: Dict[str, SharedLibrary] = {
    "react": SharedLibrary(singleton=True, eager=True, required_version=False),
    "react-dom": SharedLibrary(singleton=True, eager=True, required_version=False),
}


class LoadHandle(ABC):
    """Handle onto an instantiated remote scope."""

    @abstractmethod
    def load_module(self, request: str) -> Any:
        """Load ``<scope>/<exposed path>`` and return the module object."""

    def cleanup(self) -> Any:
        """Release resources held by the handle; optional."""
        return None


LoaderFactory = Callable[[LoaderConfig], Union[LoadHandle, Awaitable[LoadHandle]]]


def merge_shared(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, SharedLibrary]:
    """Overlay caller overrides on the default shared configuration.

    Overrides may be :class:`SharedLibrary` instances or plain mappings using
    ``singleton``, ``eager`` and ``required_version`` (or ``requiredVersion``).
    """
    merged = dict(DEFAULT_SHARED_CONFIG)
    for name, spec in (overrides or {}).items():
        if isinstance(spec, SharedLibrary):
            merged[name] = spec
            continue
        spec = dict(spec or {})
        merged[name] = SharedLibrary(
            singleton=bool(spec.get("singleton", True)),
            eager=bool(spec.get("eager", True)),
            required_version=spec.get("required_version", spec.get("requiredVersion", False)),
        )
    return merged


def build_loader_config(scope_id: str, url: str, shared: Dict[str, SharedLibrary]) -> LoaderConfig:
    return LoaderConfig(
        identity=Constants.HOST_IDENTITY,
        remotes=[RemoteEntry(name=scope_id, entry=url)],
        shared=dict(shared),
    )


async def resolve_awaitable(value: Any) -> Any:
    """Await ``value`` when it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value
