"""Value types passed between intake, processing, stores and collaborators."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

RESPONSE_NONE = "none"
RESPONSE_ACCEPTED = "accepted"
RESPONSE_DECLINED = "declined"
RESPONSE_TENTATIVE = "tentative"
RESPONSE_STATES = (RESPONSE_NONE, RESPONSE_ACCEPTED, RESPONSE_DECLINED, RESPONSE_TENTATIVE)

CHANGE_CREATED = "created"
CHANGE_UPDATED = "updated"
CHANGE_DELETED = "deleted"
CHANGE_TYPES = (CHANGE_CREATED, CHANGE_UPDATED, CHANGE_DELETED)


@dataclass(frozen=True)
class SubscriptionRecord:
    id: str
    resource_path: str
    client_state: str
    expires_at: datetime
    notification_endpoint: str
    active: bool = True
    change_types: str = "created,updated,deleted"
    state: str = "active"


@dataclass(frozen=True)
class SubscriptionSpec:
    """Request to establish a subscription upstream."""

    resource_path: str
    change_types: str
    notification_url: str
    client_state: str
    expires_at: datetime
    lifecycle_notification_url: Optional[str] = None


@dataclass(frozen=True)
class ResourceSnapshot:
    """Full observed state of a resource. Replaced wholesale, never merged."""

    resource_id: str
    etag: str
    attendee_states: Mapping[str, str]
    captured_at: datetime
    version: int = 0

    def with_version(self, version: int) -> "ResourceSnapshot":
        return ResourceSnapshot(
            resource_id=self.resource_id,
            etag=self.etag,
            attendee_states=dict(self.attendee_states),
            captured_at=self.captured_at,
            version=version,
        )


@dataclass(frozen=True)
class NotificationEnvelope:
    subscription_id: str
    change_type: str
    resource_id: str
    etag: str
    client_state_claimed: Optional[str]
    resource_path: Optional[str] = None
    tenant_id: Optional[str] = None
    lifecycle_event: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return fingerprint_for(self.subscription_id, self.resource_id, self.etag)

    def to_payload(self) -> Dict[str, Optional[str]]:
        return {
            "subscription_id": self.subscription_id,
            "change_type": self.change_type,
            "resource_id": self.resource_id,
            "etag": self.etag,
            "resource_path": self.resource_path,
            "tenant_id": self.tenant_id,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Optional[str]]) -> "NotificationEnvelope":
        # clientState is never persisted with the work item.
        return cls(
            subscription_id=payload["subscription_id"] or "",
            change_type=payload["change_type"] or "",
            resource_id=payload["resource_id"] or "",
            etag=payload.get("etag") or "",
            client_state_claimed=None,
            resource_path=payload.get("resource_path"),
            tenant_id=payload.get("tenant_id"),
        )


@dataclass(frozen=True)
class ChangeEvent:
    resource_id: str
    attendee_id: str
    previous_state: str
    new_state: str
    observed_at: datetime

    def to_payload(self) -> Dict[str, str]:
        return {
            "resource_id": self.resource_id,
            "attendee_id": self.attendee_id,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
            "observed_at": self.observed_at.isoformat(),
        }


@dataclass(frozen=True)
class SubscriptionAlert:
    """Fatal lifecycle condition an operator must see."""

    subscription_id: str
    resource_path: str
    reason: str
    expires_at: Optional[datetime]
    raised_at: datetime
    details: Dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, object]:
        return {
            "subscription_id": self.subscription_id,
            "resource_path": self.resource_path,
            "reason": self.reason,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "raised_at": self.raised_at.isoformat(),
            "details": dict(self.details),
        }


def fingerprint_for(subscription_id: str, resource_id: str, etag: str) -> str:
    """Deterministic dedupe key for (subscriptionId, resourceId, etag)."""
    parts: Tuple[str, ...] = (subscription_id or "", resource_id or "", etag or "")
    digest = hashlib.sha256("\x1f".join(parts).encode("utf-8"))
    return digest.hexdigest()


__all__ = [
    "ChangeEvent",
    "NotificationEnvelope",
    "ResourceSnapshot",
    "SubscriptionAlert",
    "SubscriptionRecord",
    "SubscriptionSpec",
    "fingerprint_for",
    "RESPONSE_STATES",
    "CHANGE_TYPES",
]
