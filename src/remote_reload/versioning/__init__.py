"""Version algebra, the durable version cache and the registry source."""

from .algebra import (
    check_compatibility,
    compare_versions,
    extract_major,
    find_compatible,
    is_prerelease,
    latest_version,
    parse_version,
    satisfies,
    sort_versions,
    stable_versions,
)
from .cache import VersionCache
from .models import CompatibilityResult, Severity, VersionInfo, VersionRange
from .source import NpmRegistrySource, VersionSource

__all__ = [
    "check_compatibility",
    "compare_versions",
    "extract_major",
    "find_compatible",
    "is_prerelease",
    "latest_version",
    "parse_version",
    "satisfies",
    "sort_versions",
    "stable_versions",
    "VersionCache",
    "CompatibilityResult",
    "Severity",
    "VersionInfo",
    "VersionRange",
    "NpmRegistrySource",
    "VersionSource",
]
