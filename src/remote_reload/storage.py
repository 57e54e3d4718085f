"""Durable key-value persistence used by the version cache.

Stores hold string values under string keys. Implementations may raise on
I/O problems; callers that must never fail (the version cache) catch and
degrade to empty results.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal string key-value persistence capability."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value or None when absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete ``key``; absent keys are ignored."""


class MemoryStore(KeyValueStore):
    """In-process store, mainly for tests and ephemeral hosts."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Store backed by a single JSON object on disk.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace`` so readers never observe a partial file.
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    def _read(self) -> Dict[str, str]:
        if not os.path.isfile(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object storage file: %s", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".storage-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
