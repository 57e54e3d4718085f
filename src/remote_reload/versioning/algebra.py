"""Version parsing, comparison and range evaluation.

Parsing never fails: missing or non-numeric segments become 0. Simple
expressions carry at most one leading operator (``=``, ``>``, ``>=``, ``<``,
``<=``, ``^``, ``~``); compound npm ranges such as ``1.x`` or
``>=1.0.0 <2.0.0`` are delegated to ``semantic_version.NpmSpec``.
"""

import re
from functools import cmp_to_key
from typing import Iterable, List, Optional, Tuple, Union

import semantic_version

from ..constants import Constants
from .models import CompatibilityResult, Severity, VersionInfo, VersionRange

_OPERATOR_RE = re.compile(r"^\s*(>=|<=|>|<|=|~|\^)?\s*")
_X_RANGE_RE = re.compile(r"(^|\.)[xX*](\.|$)")


def _to_int(segment: Optional[str]) -> int:
    if segment is None:
        return 0
    segment = segment.strip()
    return int(segment) if segment.isascii() and segment.isdigit() else 0


def parse_version(version: str) -> VersionInfo:
    """Parse a version string into its numeric triple and metadata."""
    cleaned = (version or "").strip()
    if cleaned[:1] in ("v", "V"):
        cleaned = cleaned[1:]

    core, _, build = cleaned.partition("+")
    numeric, _, prerelease = core.partition("-")
    parts = numeric.split(".")
    padded = parts + [None] * (3 - len(parts))

    return VersionInfo(
        major=_to_int(padded[0]),
        minor=_to_int(padded[1]),
        patch=_to_int(padded[2]),
        prerelease=prerelease or None,
        build=build or None,
        raw=cleaned,
    )


def compare_versions(v1: str, v2: str) -> int:
    """Return -1, 0 or 1; a prerelease sorts before its release."""
    p1 = parse_version(v1)
    p2 = parse_version(v2)

    t1 = (p1.major, p1.minor, p1.patch)
    t2 = (p2.major, p2.minor, p2.patch)
    if t1 != t2:
        return -1 if t1 < t2 else 1

    if p1.prerelease and not p2.prerelease:
        return -1
    if not p1.prerelease and p2.prerelease:
        return 1
    if p1.prerelease and p2.prerelease and p1.prerelease != p2.prerelease:
        return -1 if p1.prerelease < p2.prerelease else 1
    return 0


def _is_compound(expr: str) -> bool:
    """True for npm range syntax that a single operator cannot express."""
    stripped = expr.strip()
    if not stripped:
        return False
    rest = _OPERATOR_RE.sub("", stripped, count=1)
    if "||" in stripped or re.search(r"\s", rest):
        return True
    core = rest.split("+", 1)[0].split("-", 1)[0]
    return bool(_X_RANGE_RE.search(core))


def _satisfies_npm(current: str, expr: str) -> bool:
    try:
        spec = semantic_version.NpmSpec(expr)
        return spec.match(semantic_version.Version.coerce(parse_version(current).raw))
    except Exception:  # pylint: disable=broad-exception-caught
        # NpmSpec fails with assorted errors on malformed ranges
        return False


def split_operator(expr: str) -> Tuple[str, str]:
    """Split ``expr`` into (operator, version); absent operator means ``=``."""
    match = _OPERATOR_RE.match(expr or "")
    operator = match.group(1) if match and match.group(1) else "="
    return operator, (expr or "")[match.end() if match else 0:].strip()


def satisfies(current: str, required: str) -> bool:
    """Check whether ``current`` satisfies the range expression ``required``.

    ``^X.Y.Z`` requires the same major and, when the major is 0, the same
    minor. ``~X.Y.Z`` requires the same major and minor. Neither imposes a
    lower bound within that line.
    """
    if _is_compound(required):
        return _satisfies_npm(current, required)

    operator, version = split_operator(required)
    cmp = compare_versions(current, version)

    if operator == ">":
        return cmp > 0
    if operator == ">=":
        return cmp >= 0
    if operator == "<":
        return cmp < 0
    if operator == "<=":
        return cmp <= 0

    cur = parse_version(current)
    req = parse_version(version)
    if operator == "^":
        return cur.major == req.major and (cur.major > 0 or cur.minor == req.minor)
    if operator == "~":
        return cur.major == req.major and cur.minor == req.minor
    return cmp == 0


def check_compatibility(current: str, required: str, label: str) -> CompatibilityResult:
    """Explain whether ``label@current`` meets ``required``."""
    if satisfies(current, required):
        return CompatibilityResult(
            compatible=True,
            current_version=current,
            required_version=required,
            severity=Severity.INFO,
            message=f"{label}@{current} satisfies {required}",
        )

    _, target = split_operator(required)
    req = parse_version(target)
    if compare_versions(current, target) < 0:
        return CompatibilityResult(
            compatible=False,
            current_version=current,
            required_version=required,
            severity=Severity.ERROR,
            message=f"{label}@{current} is too old, {required} is required",
            suggestion=f"Upgrade to {req.major}.{req.minor}.x or later",
        )
    return CompatibilityResult(
        compatible=False,
        current_version=current,
        required_version=required,
        severity=Severity.WARNING,
        message=f"{label}@{current} is newer than {required}",
        suggestion=(
            f"Downgrade to {req.major}.{req.minor}.x or a release within "
            f"major {req.major} for strict compatibility"
        ),
    )


def sort_versions(versions: Iterable[str], order: str = "desc") -> List[str]:
    """Stable sort; ``desc`` puts the highest version first."""
    return sorted(versions, key=cmp_to_key(compare_versions), reverse=(order == "desc"))


def latest_version(versions: Iterable[str]) -> Optional[str]:
    ordered = sort_versions(versions, "desc")
    return ordered[0] if ordered else None


def find_compatible(
    versions: Iterable[str], version_range: Union[VersionRange, str]
) -> Optional[str]:
    """Return the highest version inside ``version_range`` or None.

    A string range is evaluated with :func:`satisfies`.
    """
    candidates = list(versions)
    if isinstance(version_range, str):
        candidates = [v for v in candidates if satisfies(v, version_range)]
    elif version_range.exact:
        candidates = [v for v in candidates if v == version_range.exact]
    else:
        if version_range.min:
            candidates = [v for v in candidates if compare_versions(v, version_range.min) >= 0]
        if version_range.max:
            candidates = [v for v in candidates if compare_versions(v, version_range.max) <= 0]
    return latest_version(candidates)


def stable_versions(versions: Iterable[str]) -> List[str]:
    """Drop versions carrying an alpha/beta/rc marker, preserving order."""
    return [
        v for v in versions
        if not any(marker in v.lower() for marker in Constants.PRERELEASE_MARKERS)
    ]


def extract_major(version: str) -> int:
    return parse_version(version).major


def is_prerelease(version: str) -> bool:
    return parse_version(version).prerelease is not None
