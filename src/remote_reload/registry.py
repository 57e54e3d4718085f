"""Lifecycle registry of loaded remote instances."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .common.clock import Clock, now_ms
from .constants import Constants
from .fetch.loader import LoadHandle, resolve_awaitable
from .versioning.algebra import satisfies
from .versioning.cache import VersionCache

logger = logging.getLogger(__name__)


def instance_key(name: str, pkg: str, version: str) -> str:
    """Composite key ``name::pkg@version``."""
    return f"{name}::{pkg}@{version}"


@dataclass
class RemoteInstance:
    """A registered remote and the module paths loaded through it."""
    name: str
    scope_id: str
    pkg: str
    version: str
    handle: LoadHandle
    created_at: int
    loaded_modules: Set[str] = field(default_factory=set)

    @property
    def key(self) -> str:
        return instance_key(self.name, self.pkg, self.version)


@dataclass(frozen=True)
class LoadedRemote:
    """Snapshot row returned by :meth:`InstanceRegistry.list_loaded`."""
    name: str
    pkg: str
    version: str
    loaded_module_count: int
    timestamp: int


class InstanceRegistry:
    """Track active remote instances and tear them down.

    Cleanup hooks are best-effort: a failing hook is logged and the record
    is removed anyway.
    """

    def __init__(
        self,
        version_cache: Optional[VersionCache] = None,
        clock: Optional[Clock] = None,
    ):
        self._version_cache = version_cache
        self._clock = clock or now_ms
        self._instances: Dict[str, RemoteInstance] = {}

    def register(
        self, name: str, scope_id: str, pkg: str, version: str, handle: LoadHandle
    ) -> str:
        """Record a fresh instance, replacing any previous one under the same key."""
        instance = RemoteInstance(
            name=name,
            scope_id=scope_id,
            pkg=pkg,
            version=version,
            handle=handle,
            created_at=self._clock(),
        )
        self._instances[instance.key] = instance
        return instance.key

    def register_module(self, key: str, module_path: str) -> None:
        instance = self._instances.get(key)
        if instance is not None:
            instance.loaded_modules.add(module_path)

    def get(self, key: str) -> Optional[RemoteInstance]:
        return self._instances.get(key)

    async def _cleanup(self, instance: RemoteInstance) -> None:
        try:
            instance.loaded_modules.clear()
            hook = getattr(instance.handle, "cleanup", None)
            if callable(hook):
                await resolve_awaitable(hook())
            logger.info("Unloaded %s@%s", instance.pkg, instance.version)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Error while unloading %s: %s", instance.pkg, exc)

    async def unload(
        self,
        name: str,
        pkg: str,
        version: str = Constants.WILDCARD,
        clear_cache: bool = False,
    ) -> bool:
        """Tear down every instance of ``name``/``pkg`` at ``version``.

        ``version='*'`` matches any registered version. With ``clear_cache``
        the matching version cache entries are evicted too.

        Returns:
            True when at least one instance was removed.
        """
        matched = [
            key for key, instance in self._instances.items()
            if instance.name == name
            and instance.pkg == pkg
            and (version == Constants.WILDCARD or instance.version == version)
        ]
        for key in matched:
            instance = self._instances.get(key)
            if instance is not None:
                await self._cleanup(instance)
                self._instances.pop(key, None)

        if clear_cache and self._version_cache is not None:
            self._version_cache.evict(pkg, version)

        return bool(matched)

    async def unload_all(self, clear_all_cache: bool = False) -> None:
        """Tear down every instance, waiting for all cleanup hooks to settle."""
        instances = list(self._instances.values())
        await asyncio.gather(*(self._cleanup(instance) for instance in instances))
        for instance in instances:
            self._instances.pop(instance.key, None)

        if clear_all_cache and self._version_cache is not None:
            self._version_cache.clear()

    def is_loaded(self, name: str, pkg: str, version: Optional[str] = None) -> bool:
        """Literal key lookup; an omitted version looks up ``name::pkg@*``.

        The requested version is not evaluated as a range. Use
        :meth:`find_loaded` for range matching.
        """
        return instance_key(name, pkg, version or Constants.WILDCARD) in self._instances

    def find_loaded(
        self, name: str, pkg: str, range_expr: str = Constants.WILDCARD
    ) -> List[RemoteInstance]:
        """Instances of ``name``/``pkg`` whose version satisfies ``range_expr``."""
        return [
            instance for instance in self._instances.values()
            if instance.name == name
            and instance.pkg == pkg
            and (range_expr == Constants.WILDCARD or satisfies(instance.version, range_expr))
        ]

    def list_loaded(self) -> List[LoadedRemote]:
        return [
            LoadedRemote(
                name=instance.name,
                pkg=instance.pkg,
                version=instance.version,
                loaded_module_count=len(instance.loaded_modules),
                timestamp=instance.created_at,
            )
            for instance in self._instances.values()
        ]
