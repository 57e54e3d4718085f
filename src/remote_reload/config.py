"""Per-request load options and process-wide settings.

Settings are read from a YAML (or JSON) file. A missing or malformed file
is reported and replaced by defaults; configuration never breaks a caller.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .constants import Constants

logger = logging.getLogger(__name__)

_CAMEL_ALIASES = {
    "delay": "delay_ms",
    "delayMs": "delay_ms",
    "localFallback": "local_fallback",
    "cacheTTL": "cache_ttl_ms",
    "cacheTTLms": "cache_ttl_ms",
    "cacheTtlMs": "cache_ttl_ms",
    "shared": "shared_overrides",
    "sharedOverrides": "shared_overrides",
}


@dataclass
class LoadOptions:
    """Options for loading a single remote."""

    name: str
    pkg: str
    version: str = Constants.LATEST
    retries: int = Constants.DEFAULT_RETRIES
    delay_ms: int = Constants.DEFAULT_DELAY_MS
    local_fallback: Optional[str] = None
    cache_ttl_ms: int = Constants.DEFAULT_CACHE_TTL_MS
    revalidate: bool = True
    shared_overrides: Optional[Dict[str, Any]] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LoadOptions":
        """Build options from a mapping using snake_case or camelCase keys.

        Unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            target = _CAMEL_ALIASES.get(key, key)
            if target in known:
                kwargs[target] = value
        return cls(**kwargs)


@dataclass
class Settings:
    """Process-wide configuration."""

    mirror_templates: List[str] = field(default_factory=lambda: list(Constants.CDN_TEMPLATES))
    registry_url: str = Constants.REGISTRY_URL_NPM
    storage_path: str = Constants.DEFAULT_STORAGE_PATH
    preload_ttl_ms: int = Constants.PRELOAD_TTL_MS
    health_timeout_sec: float = Constants.HEALTH_TIMEOUT_SEC
    healthy_latency_ms: int = Constants.HEALTHY_LATENCY_MS
    log_level: str = "INFO"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        settings = cls()
        for item in fields(cls):
            if item.name not in data or data[item.name] is None:
                continue
            value = data[item.name]
            if item.name == "mirror_templates":
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    logger.warning("Ignoring invalid mirror_templates setting: %r", value)
                    continue
                value = list(value)
            setattr(settings, item.name, value)
        return settings

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Settings":
        """Load settings from ``path`` or the REMOTE_RELOAD_CONFIG file.

        Returns defaults when no file is configured, the file is missing, or
        its content cannot be parsed.
        """
        path = path or os.environ.get(Constants.ENV_CONFIG)
        if not path:
            return cls()
        path = os.path.expanduser(path)
        if not os.path.isfile(path):
            logger.warning("Config file not found: %s", path)
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as fh:
                if path.lower().endswith(".json"):
                    data = json.load(fh)
                else:
                    data = yaml.safe_load(fh)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.warning("Failed to load config %s: %s", path, exc)
            return cls()

        if not isinstance(data, dict):
            return cls()
        # Allow the settings to live under a top-level "remote_reload" section.
        section = data.get("remote_reload", data)
        return cls.from_mapping(section if isinstance(section, dict) else {})
