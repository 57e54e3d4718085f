"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    CDN_TEMPLATES = [
        "https://cdn.jsdelivr.net/npm/{pkg}@{version}/dist/remoteEntry.js",
        "https://unpkg.com/{pkg}@{version}/dist/remoteEntry.js",
    ]
    HOST_IDENTITY = "host"
    LATEST = "latest"
    WILDCARD = "*"

    VERSION_CACHE_KEY = "remote-reload.versions"
    DEFAULT_STORAGE_PATH = "~/.cache/remote-reload/storage.json"
    DEFAULT_CACHE_TTL_MS = 24 * 60 * 60 * 1000
    PRELOAD_TTL_MS = 5 * 60 * 1000
    IDLE_DELAY_SEC = 0.001

    DEFAULT_RETRIES = 3
    DEFAULT_DELAY_MS = 1000

    HEALTH_TIMEOUT_SEC = 5
    HEALTHY_LATENCY_MS = 1000

    PRERELEASE_MARKERS = ["alpha", "beta", "rc"]

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "REMOTE_RELOAD_LOG_LEVEL"
    ENV_CONFIG = "REMOTE_RELOAD_CONFIG"

    REQUEST_TIMEOUT = 30  # Timeout in seconds for registry requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    USER_AGENT = "remote-reload/0.1"
