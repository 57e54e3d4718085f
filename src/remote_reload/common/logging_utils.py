"""Logging helpers shared by all modules.

Provides root logger configuration, structured ``extra=`` payloads, a small
timer and URL redaction so log lines never carry credentials.
"""
from __future__ import annotations

import logging
import os
import time
import urllib.parse
from typing import Any, Dict, Optional

from ..constants import Constants

_CONFIGURED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once.

    The level comes from ``level`` or the REMOTE_RELOAD_LOG_LEVEL environment
    variable and defaults to INFO. Repeated calls only adjust the level.
    """
    global _CONFIGURED  # pylint: disable=global-statement
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    if not _CONFIGURED:
        logging.basicConfig(level=level_value, format=Constants.LOG_FORMAT)
        _CONFIGURED = True
    logging.getLogger().setLevel(level_value)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build a structured ``extra`` mapping, dropping unset fields."""
    return {key: value for key, value in fields.items() if value is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by ``logger``."""
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: str) -> str:
    """Strip user info, query string and fragment from a URL for logging."""
    try:
        parts = urllib.parse.urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urllib.parse.urlunsplit((parts.scheme, host, parts.path, "", ""))


class Timer:
    """Context manager measuring elapsed wall time."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        """Elapsed milliseconds, measured up to now while still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return int(round((end - self._start) * 1000))
