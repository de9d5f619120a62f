"""Collaborator interfaces consumed by the intake and lifecycle services."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from graphwatch.core.records import (
    ChangeEvent,
    ResourceSnapshot,
    SubscriptionAlert,
    SubscriptionRecord,
    SubscriptionSpec,
)


class ClockSource(Protocol):
    def now(self) -> datetime: ...


class CredentialProvider(Protocol):
    def get_token(self) -> str:
        """Return a bearer token; raises AuthUnavailable."""
        ...


class ResourceFetcher(Protocol):
    def fetch(self, resource_id: str, resource_path: Optional[str] = None) -> ResourceSnapshot:
        """Raises NotFound, Throttled or Unavailable."""
        ...


class RemoteSubscriptionAPI(Protocol):
    def create(self, spec: SubscriptionSpec) -> SubscriptionRecord: ...

    def renew(self, subscription_id: str, new_expiry: datetime) -> datetime: ...

    def delete(self, subscription_id: str) -> None: ...

    def list(self) -> List[SubscriptionRecord]: ...


class Notifier(Protocol):
    def emit(self, event: ChangeEvent) -> None: ...


class Alerter(Protocol):
    def alert(self, alert: SubscriptionAlert) -> None: ...


class SubscriptionStore(Protocol):
    def get(self, subscription_id: str) -> Optional[SubscriptionRecord]: ...

    def add(self, record: SubscriptionRecord) -> SubscriptionRecord: ...

    def claim_due(self, due_before: datetime, now: datetime, limit: int) -> Sequence[SubscriptionRecord]: ...

    def claim(self, subscription_id: str, now: datetime) -> Optional[SubscriptionRecord]: ...

    def complete_renewal(self, subscription_id: str, new_expiry: datetime, now: datetime) -> None: ...

    def release(self, subscription_id: str, error: str) -> None: ...

    def deactivate(
        self, subscription_id: str, state: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> None: ...


class ChangeSnapshotStore(Protocol):
    def get(self, resource_id: str) -> Optional[ResourceSnapshot]: ...

    def replace(self, snapshot: ResourceSnapshot, expected_version: Optional[int]) -> ResourceSnapshot:
        """Compare-and-swap; raises SnapshotConflict."""
        ...

    def evict(self, resource_id: str) -> bool: ...


class DedupeLedger(Protocol):
    def try_insert(self, fingerprint: str, expires_at: datetime, now: datetime, **context) -> bool: ...

    def remove(self, fingerprint: str) -> bool: ...

    def purge_expired(self, now: datetime) -> int: ...


__all__ = [
    "Alerter",
    "ChangeSnapshotStore",
    "ClockSource",
    "CredentialProvider",
    "DedupeLedger",
    "Notifier",
    "RemoteSubscriptionAPI",
    "ResourceFetcher",
    "SubscriptionStore",
]
