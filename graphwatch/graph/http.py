"""Shared request/response handling for upstream calls."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from graphwatch.core.errors import NotFound, Rejected, Throttled, Unavailable

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {408, 429, 500, 502, 503, 504}


def _retry_after(resp: requests.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason or ""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or "")
    return str(error or "")


def raise_for_upstream(resp: requests.Response, what: str) -> None:
    """Map an HTTP status to the error taxonomy."""
    if resp.status_code < 400:
        return
    detail = _error_message(resp)
    if resp.status_code == 429 or resp.status_code == 503:
        raise Throttled(f"{what} throttled ({resp.status_code}): {detail}", retry_after=_retry_after(resp))
    if resp.status_code in RETRYABLE_STATUSES:
        raise Unavailable(f"{what} failed ({resp.status_code}): {detail}", retry_after=_retry_after(resp))
    if resp.status_code == 404:
        raise NotFound(f"{what} not found: {detail}", status_code=404)
    raise Rejected(f"{what} rejected ({resp.status_code}): {detail}", status_code=resp.status_code)


def send(session: requests.Session, method: str, url: str, what: str, **kwargs: Any) -> requests.Response:
    """Issue a request, translating transport errors to Unavailable."""
    try:
        resp = session.request(method, url, **kwargs)
    except requests.RequestException as e:
        logger.warning("%s: transport error %s", what, e)
        raise Unavailable(f"{what}: {e}") from e
    raise_for_upstream(resp, what)
    return resp
