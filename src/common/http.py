"""
Shared HTTP utilities for the Holded API adapter.

Provides the retry wrapper around ``requests`` and helpers to inspect
response bodies that may not be JSON (Holded answers some failures with an
HTML page instead of a JSON error).
"""

import logging
from typing import Any, Dict, Optional, Sequence, Type, Union

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (requests.exceptions.Timeout, requests.exceptions.ConnectionError)

_NOT_JSON = object()


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30,
    attempts: int = 3,
    retry_on: Sequence[Type[Exception]] = TRANSPORT_ERRORS,
    backoff: Optional[Dict[str, Union[int, float]]] = None,
) -> requests.Response:
    """
    Make an HTTP request, retrying transport failures with exponential backoff.

    Only exceptions listed in ``retry_on`` are retried; HTTP error statuses
    are returned to the caller untouched. After the last attempt the
    original exception is re-raised.

    Args:
        session: Requests session to use
        method: HTTP method (GET, POST, etc.)
        url: Full URL to request
        params: Query parameters (``None`` values are dropped)
        json: JSON body
        headers: Extra headers merged over the session headers
        timeout: Request timeout in seconds
        attempts: Total attempts including the first one
        retry_on: Exception types to retry on
        backoff: Backoff configuration with keys multiplier, min, max

    Returns:
        HTTP response object
    """
    if backoff is None:
        backoff = {"multiplier": 1, "min": 1, "max": 10}

    if params:
        params = {k: v for k, v in params.items() if v is not None}

    @retry(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(
            multiplier=backoff.get("multiplier", 1),
            min=backoff.get("min", 1),
            max=backoff.get("max", 10),
        ),
        retry=retry_if_exception_type(tuple(retry_on)),
        reraise=True,
    )
    def _make_request() -> requests.Response:
        logger.debug(f"Making {method} request to {url} params={params}")
        return session.request(
            method=method,
            url=url,
            params=params or None,
            json=json,
            headers=headers or None,
            timeout=timeout,
        )

    return _make_request()


def parse_json_body(response: requests.Response) -> Any:
    """
    Decode a JSON response body.

    Returns a sentinel (see ``is_json``) instead of raising when the body is
    not JSON, so callers can classify the failure themselves.
    """
    try:
        return response.json()
    except ValueError:
        return _NOT_JSON


def is_json(body: Any) -> bool:
    """Whether ``parse_json_body`` managed to decode the body."""
    return body is not _NOT_JSON


def body_preview(response: requests.Response, length: int = 200) -> str:
    """First characters of a response body with whitespace collapsed."""
    try:
        text = response.text or ""
    except Exception:
        return ""
    if not isinstance(text, str):
        return ""
    return " ".join(text[:length].split())
