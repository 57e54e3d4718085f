"""Command-line interface for operators.

Subcommands:
    health   probe CDN mirrors for one or more remotes
    versions list published versions, optionally filtered by a range
    check    explain whether a version satisfies a requirement
    cache    show or clear the persisted version cache
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Tuple

from .common.logging_utils import configure_logging
from .config import LoadOptions, Settings
from .constants import Constants, ExitCodes
from .health import HealthProbe, HealthStatus, format_health_status
from .storage import JsonFileStore
from .versioning.algebra import check_compatibility, satisfies, sort_versions, stable_versions
from .versioning.cache import VersionCache
from .versioning.models import Severity
from .versioning.source import NpmRegistrySource

logger = logging.getLogger(__name__)


def split_package_token(token: str) -> Tuple[str, str]:
    """Split ``pkg@version``; scoped names keep their leading ``@``."""
    token = token.strip()
    name, sep, version = token.rpartition("@")
    if not sep or not name:
        return token, Constants.LATEST
    return name, version or Constants.LATEST


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="remote-reload",
        description="Resolve, probe and cache versioned remote modules",
    )
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    sub = parser.add_subparsers(dest="COMMAND", required=True)

    health = sub.add_parser("health", help="Probe mirrors for remotes")
    health.add_argument("packages", nargs="+", metavar="PKG[@VERSION]")
    health.add_argument("--json", dest="JSON", action="store_true",
                        help="Emit the report as JSON")

    versions = sub.add_parser("versions", help="List published versions")
    versions.add_argument("package", metavar="PKG")
    versions.add_argument("--range", dest="RANGE", type=str,
                          help="Only versions satisfying this range expression")
    versions.add_argument("--stable", dest="STABLE", action="store_true",
                          help="Drop alpha/beta/rc versions")
    versions.add_argument("--asc", dest="ASC", action="store_true",
                          help="Sort ascending instead of descending")

    check = sub.add_parser("check", help="Check a version against a requirement")
    check.add_argument("current", metavar="CURRENT")
    check.add_argument("required", metavar="REQUIRED")
    check.add_argument("--label", dest="LABEL", default="package", type=str)

    cache = sub.add_parser("cache", help="Inspect the persisted version cache")
    cache.add_argument("action", choices=["show", "clear"])
    cache.add_argument("package", nargs="?", metavar="PKG")

    return parser.parse_args(argv)


def _setup_logging(args: argparse.Namespace, settings: Settings) -> None:
    configure_logging(args.LOG_LEVEL or settings.log_level)
    if args.LOG_FILE:
        file_handler = logging.FileHandler(args.LOG_FILE)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", args.LOG_FILE)


def _version_cache(settings: Settings) -> VersionCache:
    return VersionCache(JsonFileStore(settings.storage_path), NpmRegistrySource(settings.registry_url))


async def _run_health(args: argparse.Namespace, settings: Settings) -> int:
    remotes = []
    for token in args.packages:
        pkg, version = split_package_token(token)
        remotes.append(LoadOptions(name=pkg, pkg=pkg, version=version))

    async with HealthProbe(
        _version_cache(settings),
        settings.mirror_templates,
        timeout_sec=settings.health_timeout_sec,
        healthy_latency_ms=settings.healthy_latency_ms,
    ) as probe:
        report = await probe.report(remotes)

    if args.JSON:
        print(json.dumps({
            "timestamp": report.timestamp,
            "overall": report.overall.value,
            "remotes": [
                {
                    "pkg": r.pkg,
                    "version": r.version,
                    "status": r.status.value,
                    "latency_ms": r.latency_ms,
                    "mirror": r.chosen_mirror,
                    "error": r.details.error,
                }
                for r in report.remotes
            ],
        }, indent=2))
    else:
        for result in report.remotes:
            print(f"{format_health_status(result.status)}  {result.pkg}@{result.version}  "
                  f"{result.latency_ms}ms  {result.chosen_mirror}")
        print(f"overall: {format_health_status(report.overall)}")

    if report.overall is HealthStatus.UNHEALTHY:
        return ExitCodes.CONNECTION_ERROR.value
    if report.overall is HealthStatus.DEGRADED:
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def _run_versions(args: argparse.Namespace, settings: Settings) -> int:
    found = NpmRegistrySource(settings.registry_url).fetch_versions(args.package)
    if not found:
        logger.error("No versions found for %s", args.package)
        return ExitCodes.CONNECTION_ERROR.value
    if args.STABLE:
        found = stable_versions(found)
    if args.RANGE:
        found = [v for v in found if satisfies(v, args.RANGE)]
    for version in sort_versions(found, "asc" if args.ASC else "desc"):
        print(version)
    return ExitCodes.SUCCESS.value


def _run_check(args: argparse.Namespace) -> int:
    result = check_compatibility(args.current, args.required, args.LABEL)
    print(f"[{result.severity.value.upper()}] {result.message}")
    if result.suggestion:
        print(f"  suggestion: {result.suggestion}")
    if result.severity is Severity.ERROR:
        return ExitCodes.FILE_ERROR.value
    if result.severity is Severity.WARNING:
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def _run_cache(args: argparse.Namespace, settings: Settings) -> int:
    cache = _version_cache(settings)
    if args.action == "clear":
        if args.package:
            cache.evict(args.package)
        else:
            cache.clear()
        return ExitCodes.SUCCESS.value

    document = cache.read_all()
    if args.package:
        document = {args.package: document.get(args.package, {})}
    print(json.dumps(document, indent=2, sort_keys=True))
    return ExitCodes.SUCCESS.value


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = parse_args(argv)
    settings = Settings.load(args.CONFIG)
    _setup_logging(args, settings)

    if args.COMMAND == "health":
        return asyncio.run(_run_health(args, settings))
    if args.COMMAND == "versions":
        return _run_versions(args, settings)
    if args.COMMAND == "check":
        return _run_check(args)
    return _run_cache(args, settings)


if __name__ == "__main__":
    sys.exit(main())
