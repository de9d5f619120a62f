"""Pydantic models for inbound change-notification payloads."""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from graphwatch.core.records import CHANGE_TYPES, NotificationEnvelope

# Users('abc')/Events('xyz') and Users/abc/Events/xyz are both seen upstream.
_SEGMENT = re.compile(r"^[^(]*\('?([^')]*)'?\)$")


class ResourceData(BaseModel):
    """Resource data included in a change notification (e.g. event id, etag)."""

    odata_type: Optional[str] = Field(default=None, alias="@odata.type")
    odata_id: Optional[str] = Field(default=None, alias="@odata.id")
    odata_etag: Optional[str] = Field(default=None, alias="@odata.etag")
    id: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChangeNotification(BaseModel):
    """Single change or lifecycle notification."""

    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    change_type: Optional[str] = Field(default=None, alias="changeType")
    client_state: Optional[str] = Field(default=None, alias="clientState")
    resource: Optional[str] = None
    resource_data: Optional[ResourceData] = Field(default=None, alias="resourceData")
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
    lifecycle_event: Optional[str] = Field(default=None, alias="lifecycleEvent")
    subscription_expiration_date_time: Optional[str] = Field(
        default=None, alias="subscriptionExpirationDateTime"
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def resource_id(self) -> Optional[str]:
        if self.resource_data and self.resource_data.id:
            return self.resource_data.id
        if not self.resource:
            return None
        last = self.resource.rstrip("/").split("/")[-1]
        match = _SEGMENT.match(last)
        return match.group(1) if match else last or None

    def to_envelope(self) -> NotificationEnvelope:
        """Normalize; raises ValueError when required fields are missing."""
        if not self.subscription_id:
            raise ValueError("missing_subscription_id")
        if self.lifecycle_event:
            return NotificationEnvelope(
                subscription_id=self.subscription_id,
                change_type="",
                resource_id=self.resource_id() or "",
                etag="",
                client_state_claimed=self.client_state,
                resource_path=self.resource,
                tenant_id=self.tenant_id,
                lifecycle_event=self.lifecycle_event,
            )
        change_type = (self.change_type or "").strip().lower()
        if change_type not in CHANGE_TYPES:
            raise ValueError("invalid_change_type")
        resource_id = self.resource_id()
        if not resource_id:
            raise ValueError("missing_resource_id")
        etag = (self.resource_data.odata_etag if self.resource_data else None) or ""
        return NotificationEnvelope(
            subscription_id=self.subscription_id,
            change_type=change_type,
            resource_id=resource_id,
            etag=etag,
            client_state_claimed=self.client_state,
            resource_path=self.resource,
            tenant_id=self.tenant_id,
        )


def is_notification_batch(body: Any) -> bool:
    """Batch shape: a JSON object whose `value` is an array."""
    return isinstance(body, dict) and isinstance(body.get("value"), list)


__all__ = ["ChangeNotification", "ResourceData", "is_notification_batch"]
