"""Data models for version parsing, ranges and compatibility verdicts."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Severity(Enum):
    """Severity of a compatibility verdict."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class VersionInfo:
    """Parsed version; numeric parts default to 0 when unparsable."""
    major: int
    minor: int
    patch: int
    prerelease: Optional[str]
    build: Optional[str]
    raw: str  # input without a leading "v"


@dataclass(frozen=True)
class VersionRange:
    """Bounds used by find_compatible; ``exact`` wins over min/max."""
    min: Optional[str] = None
    max: Optional[str] = None
    exact: Optional[str] = None


@dataclass
class CompatibilityResult:
    """Outcome of checking a current version against a requirement."""
    compatible: bool
    current_version: str
    required_version: str
    severity: Severity
    message: str
    suggestion: Optional[str] = None
