"""Blocking HTTP helpers for registry metadata lookups.

Callers only see a ``(status, headers, payload)`` tuple. Nothing here
raises: a status of 0 means no response was obtained after all retries.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

from ..constants import Constants
from .logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

HttpResult = Tuple[int, Dict[str, str], str]


def _trace(message: str, target: str, **fields: Any) -> None:
    if is_debug_enabled(logger):
        logger.debug(message, extra=extra_context(
            component="registry_http", target=target, **fields
        ))


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> HttpResult:
    """GET ``url``, retrying timeouts, connection errors and 5xx answers.

    Attempts are spaced by a linearly growing pause. A 4xx answer is
    returned as-is since retrying it cannot help.
    """
    target = safe_url(url)
    request_headers = {"User-Agent": Constants.USER_AGENT, "Accept": "application/json"}
    request_headers.update(headers or {})
    failure = "no attempt made"

    for attempt in range(1, Constants.HTTP_RETRY_MAX + 1):
        if attempt > 1:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (attempt - 1))
        with Timer() as t:
            try:
                response = requests.get(
                    url, timeout=Constants.REQUEST_TIMEOUT, headers=request_headers, **kwargs
                )
            except requests.Timeout:
                failure = "timeout"
                _trace("Registry request timed out", target, event="http_exception",
                       outcome="timeout", attempt=attempt)
                continue
            except requests.RequestException as exc:
                failure = str(exc)
                _trace("Registry request failed", target, event="http_exception",
                       outcome="request_exception", attempt=attempt)
                continue

        _trace("Registry response", target, event="http_response",
               status_code=response.status_code, attempt=attempt,
               duration_ms=t.duration_ms())
        if response.status_code >= 500:
            failure = f"HTTP {response.status_code}"
            continue
        return response.status_code, dict(response.headers), response.text

    return 0, {}, f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {failure}"


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """GET ``url`` and decode a JSON body.

    Args:
        url: Target URL
        headers: Optional request headers
        **kwargs: Additional requests.get parameters

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none)
    """
    status_code, response_headers, text = robust_get(url, headers=headers, **kwargs)
    if status_code != 200 or not text:
        return status_code, response_headers, None
    try:
        return status_code, response_headers, json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON from %s", safe_url(url))
        return status_code, response_headers, None
