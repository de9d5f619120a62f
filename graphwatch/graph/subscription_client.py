"""Upstream subscription administration (create/renew/delete/list)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import requests

from graphwatch.core.contracts import CredentialProvider
from graphwatch.core.errors import NotFound, Unavailable
from graphwatch.core.records import SubscriptionRecord, SubscriptionSpec
from graphwatch.core.utils.timefmt import format_instant, parse_instant
from graphwatch.graph.http import send

logger = logging.getLogger(__name__)


def record_from_payload(data: Mapping[str, Any], client_state: str = "") -> SubscriptionRecord:
    """Build a record from an upstream subscription resource."""
    raw_expiry = data.get("expirationDateTime")
    try:
        expires_at = parse_instant(raw_expiry)
    except (AttributeError, ValueError) as exc:
        raise Unavailable(f"subscription payload has malformed expirationDateTime {raw_expiry!r}") from exc
    if expires_at is None:
        raise Unavailable("subscription payload has no expirationDateTime")
    return SubscriptionRecord(
        id=str(data["id"]),
        resource_path=data.get("resource") or "",
        # The provider never echoes clientState back on list; keep ours.
        client_state=client_state or data.get("clientState") or "",
        expires_at=expires_at,
        notification_endpoint=data.get("notificationUrl") or "",
        active=True,
        change_types=(data.get("changeType") or "").replace(" ", ""),
    )


class GraphSubscriptionClient:
    """RemoteSubscriptionAPI against `{base_url}/subscriptions`."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialProvider,
        timeout: float = 30,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self.http = http or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.credentials.get_token()}",
            "Content-Type": "application/json",
        }

    def create(self, spec: SubscriptionSpec) -> SubscriptionRecord:
        body: Dict[str, Any] = {
            "changeType": spec.change_types,
            "notificationUrl": spec.notification_url,
            "resource": spec.resource_path,
            "expirationDateTime": format_instant(spec.expires_at),
            "clientState": spec.client_state,
        }
        if spec.lifecycle_notification_url:
            body["lifecycleNotificationUrl"] = spec.lifecycle_notification_url
        resp = send(
            self.http,
            "POST",
            f"{self.base_url}/subscriptions",
            "create subscription",
            json=body,
            headers=self._headers(),
            timeout=self.timeout,
        )
        record = record_from_payload(resp.json(), client_state=spec.client_state)
        logger.info("Subscription created: %s (expires %s)", record.id, record.expires_at)
        return record

    def renew(self, subscription_id: str, new_expiry: datetime) -> datetime:
        resp = send(
            self.http,
            "PATCH",
            f"{self.base_url}/subscriptions/{subscription_id}",
            f"renew subscription {subscription_id}",
            json={"expirationDateTime": format_instant(new_expiry)},
            headers=self._headers(),
            timeout=self.timeout,
        )
        try:
            granted = parse_instant(resp.json().get("expirationDateTime"))
        except ValueError:
            granted = None
        return granted or new_expiry

    def delete(self, subscription_id: str) -> None:
        try:
            send(
                self.http,
                "DELETE",
                f"{self.base_url}/subscriptions/{subscription_id}",
                f"delete subscription {subscription_id}",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except NotFound:
            logger.info("Subscription %s already gone upstream", subscription_id)

    def list(self) -> List[SubscriptionRecord]:
        records: List[SubscriptionRecord] = []
        url: Optional[str] = f"{self.base_url}/subscriptions"
        while url:
            resp = send(self.http, "GET", url, "list subscriptions", headers=self._headers(), timeout=self.timeout)
            data = resp.json()
            records.extend(record_from_payload(item) for item in data.get("value", []))
            url = data.get("@odata.nextLink")
        return records
