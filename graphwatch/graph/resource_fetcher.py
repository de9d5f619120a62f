"""Fetch a calendar event and reduce it to an attendee-response snapshot."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests

from graphwatch.core.clock import SystemClock
from graphwatch.core.contracts import ClockSource, CredentialProvider
from graphwatch.core.errors import Unavailable
from graphwatch.core.records import (
    RESPONSE_ACCEPTED,
    RESPONSE_DECLINED,
    RESPONSE_NONE,
    RESPONSE_TENTATIVE,
    ResourceSnapshot,
)
from graphwatch.graph.http import send

logger = logging.getLogger(__name__)

# Upstream responseType -> normalized response state
_RESPONSE_MAP = {
    "accepted": RESPONSE_ACCEPTED,
    "declined": RESPONSE_DECLINED,
    "tentativelyaccepted": RESPONSE_TENTATIVE,
    "tentative": RESPONSE_TENTATIVE,
    "none": RESPONSE_NONE,
    "notresponded": RESPONSE_NONE,
    "organizer": RESPONSE_NONE,
}


def normalize_response(value: Optional[str]) -> str:
    return _RESPONSE_MAP.get((value or "").strip().lower(), RESPONSE_NONE)


def attendee_states(event: Mapping[str, Any]) -> Dict[str, str]:
    """Attendee address (lower-cased) -> normalized response."""
    states: Dict[str, str] = {}
    for attendee in event.get("attendees") or []:
        address = ((attendee.get("emailAddress") or {}).get("address") or "").strip().lower()
        if not address:
            continue
        states[address] = normalize_response((attendee.get("status") or {}).get("response"))
    return states


class GraphEventFetcher:
    """ResourceFetcher for calendar events (bearer GET with a per-call timeout)."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        clock: Optional[ClockSource] = None,
        timeout: float = 15,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.clock = clock or SystemClock()
        self.timeout = timeout
        self.http = http or requests.Session()

    def _url(self, resource_id: str, resource_path: Optional[str]) -> str:
        if resource_path:
            if resource_path.startswith("http"):
                return resource_path
            return f"{self.base_url}/{resource_path.lstrip('/')}"
        return f"{self.base_url}/events/{resource_id}"

    def fetch(self, resource_id: str, resource_path: Optional[str] = None) -> ResourceSnapshot:
        token = self.credentials.get_token()
        resp = send(
            self.http,
            "GET",
            self._url(resource_id, resource_path),
            f"fetch {resource_id}",
            headers={"Authorization": f"Bearer {token}"},
            params={"$select": "id,attendees"},
            timeout=self.timeout,
        )
        try:
            body = resp.json()
        except ValueError as e:
            raise Unavailable(f"fetch {resource_id}: invalid JSON body") from e

        return ResourceSnapshot(
            resource_id=resource_id,
            etag=body.get("@odata.etag") or resp.headers.get("ETag") or "",
            attendee_states=attendee_states(body),
            captured_at=self.clock.now(),
        )
