"""In-memory collaborators for tests."""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from graphwatch.core.errors import NotFound
from graphwatch.core.records import ChangeEvent, ResourceSnapshot, SubscriptionAlert, SubscriptionRecord, SubscriptionSpec


class FakeCredentials:
    def __init__(self, token: str = "test-token") -> None:
        self.token = token
        self.calls = 0

    def get_token(self) -> str:
        self.calls += 1
        return self.token


class FakeFetcher:
    """Serves attendee states set by the test; errors can be queued per resource."""

    def __init__(self, clock) -> None:
        self.clock = clock
        self.resources: Dict[str, Tuple[str, Dict[str, str]]] = {}
        self.errors: Dict[str, List[Exception]] = defaultdict(list)
        self.calls: List[Tuple[str, Optional[str]]] = []

    def set(self, resource_id: str, attendees: Dict[str, str], etag: str = "") -> None:
        self.resources[resource_id] = (etag, dict(attendees))

    def fail(self, resource_id: str, *errors: Exception) -> None:
        self.errors[resource_id].extend(errors)

    def fetch(self, resource_id: str, resource_path: Optional[str] = None) -> ResourceSnapshot:
        self.calls.append((resource_id, resource_path))
        if self.errors.get(resource_id):
            raise self.errors[resource_id].pop(0)
        if resource_id not in self.resources:
            raise NotFound(f"{resource_id} not found", status_code=404)
        etag, attendees = self.resources[resource_id]
        return ResourceSnapshot(
            resource_id=resource_id,
            etag=etag,
            attendee_states=dict(attendees),
            captured_at=self.clock.now(),
        )


class FakeRemoteSubscriptions:
    """Upstream subscription API double; thread-safe because renewals fan out."""

    def __init__(self, clock) -> None:
        self.clock = clock
        self._lock = threading.Lock()
        self.records: Dict[str, SubscriptionRecord] = {}
        self.created: List[SubscriptionSpec] = []
        self.renewals: List[Tuple[str, datetime]] = []
        self.deleted: List[str] = []
        self.renew_errors: Dict[str, List[Exception]] = defaultdict(list)
        self.create_error: Optional[Exception] = None
        self._counter = 0

    def create(self, spec: SubscriptionSpec) -> SubscriptionRecord:
        with self._lock:
            if self.create_error is not None:
                raise self.create_error
            self._counter += 1
            self.created.append(spec)
            record = SubscriptionRecord(
                id=f"remote-{self._counter}",
                resource_path=spec.resource_path,
                client_state=spec.client_state,
                expires_at=spec.expires_at,
                notification_endpoint=spec.notification_url,
                change_types=spec.change_types,
            )
            self.records[record.id] = record
            return record

    def renew(self, subscription_id: str, new_expiry: datetime) -> datetime:
        with self._lock:
            self.renewals.append((subscription_id, new_expiry))
            if self.renew_errors.get(subscription_id):
                raise self.renew_errors[subscription_id].pop(0)
            return new_expiry

    def delete(self, subscription_id: str) -> None:
        with self._lock:
            self.deleted.append(subscription_id)
            self.records.pop(subscription_id, None)

    def list(self) -> List[SubscriptionRecord]:
        with self._lock:
            return list(self.records.values())


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: List[ChangeEvent] = []

    def emit(self, event: ChangeEvent) -> None:
        self.events.append(event)


class RecordingAlerter:
    def __init__(self) -> None:
        self.alerts: List[SubscriptionAlert] = []

    def alert(self, alert: SubscriptionAlert) -> None:
        self.alerts.append(alert)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
