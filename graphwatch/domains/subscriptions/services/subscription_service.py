"""Subscription administration: create, delete and inspect subscriptions."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from graphwatch.core.contracts import ClockSource, RemoteSubscriptionAPI
from graphwatch.core.errors import InternalStoreFailure
from graphwatch.core.records import CHANGE_TYPES, SubscriptionRecord, SubscriptionSpec
from graphwatch.domains.subscriptions.models.subscription import STATE_DELETED, GraphSubscription
from graphwatch.domains.subscriptions.services.lifecycle_manager import RenewalPolicy
from graphwatch.domains.subscriptions.services.subscription_store import SubscriptionRepository
from graphwatch.extensions import db

logger = logging.getLogger(__name__)


def new_client_state() -> str:
    """Per-subscription shared secret, echoed back by the provider on every notification."""
    return secrets.token_urlsafe(32)


def normalize_change_types(value: Optional[str], default: str = "created,updated,deleted") -> str:
    raw = value if value else default
    parts = [p.strip().lower() for p in raw.split(",") if p.strip()]
    if not parts or any(p not in CHANGE_TYPES for p in parts):
        raise ValueError("invalid_change_types")
    return ",".join(dict.fromkeys(parts))


def serialize_subscription(row: GraphSubscription) -> Dict[str, object]:
    """Admin view of a subscription row; the clientState never leaves the store."""
    return {
        "id": row.id,
        "resource": row.resource_path,
        "change_types": row.change_types,
        "notification_url": row.notification_endpoint,
        "expires_at": row.expires_at.isoformat() if row.expires_at else None,
        "state": row.state,
        "active": row.active,
        "last_renewed_at": row.last_renewed_at.isoformat() if row.last_renewed_at else None,
        "renewal_failures": row.renewal_failures or 0,
        "last_error": row.last_error,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def serialize_remote(record: SubscriptionRecord) -> Dict[str, object]:
    return {
        "id": record.id,
        "resource": record.resource_path,
        "change_types": record.change_types,
        "notification_url": record.notification_endpoint,
        "expires_at": record.expires_at.isoformat(),
    }


class SubscriptionService:
    """Creates subscriptions upstream and mirrors them into the local store."""

    def __init__(
        self,
        store: SubscriptionRepository,
        remote: RemoteSubscriptionAPI,
        clock: ClockSource,
        policy: RenewalPolicy,
        notification_url: str,
        lifecycle_url: Optional[str] = None,
        default_change_types: str = "created,updated,deleted",
        session=None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.clock = clock
        self.policy = policy
        self.notification_url = notification_url
        self.lifecycle_url = lifecycle_url
        self.default_change_types = default_change_types
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def create(
        self,
        resource_path: str,
        change_types: Optional[str] = None,
        expiration_minutes: Optional[int] = None,
    ) -> GraphSubscription:
        resource_path = (resource_path or "").strip()
        if not resource_path:
            raise ValueError("invalid_resource")
        change_types = normalize_change_types(change_types, self.default_change_types)
        desired = timedelta(minutes=expiration_minutes) if expiration_minutes else None
        expires_at: datetime = self.policy.target_expiry(resource_path, self.clock.now(), desired)

        spec = SubscriptionSpec(
            resource_path=resource_path,
            change_types=change_types,
            notification_url=self.notification_url,
            client_state=new_client_state(),
            expires_at=expires_at,
            lifecycle_notification_url=self.lifecycle_url,
        )
        # Upstream errors propagate before anything is stored.
        record = self.remote.create(spec)
        try:
            self.store.add(record)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Subscription %s created upstream but not stored", record.id)
            raise InternalStoreFailure(f"subscription {record.id} not stored") from exc
        logger.info("Subscription %s registered for %s", record.id, resource_path)
        return self.store.get_row(record.id)

    def delete(self, subscription_id: str) -> bool:
        row = self.store.get_row(subscription_id)
        if row is None:
            return False
        self.remote.delete(subscription_id)
        try:
            self.store.deactivate(subscription_id, STATE_DELETED, reason="deleted_by_operator", now=self.clock.now())
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise InternalStoreFailure(f"subscription {subscription_id} not updated") from exc
        logger.info("Subscription %s deleted", subscription_id)
        return True

    def get(self, subscription_id: str) -> Optional[GraphSubscription]:
        return self.store.get_row(subscription_id)

    def list_local(self, include_inactive: bool = True) -> List[GraphSubscription]:
        return self.store.list_rows(include_inactive=include_inactive)

    def list_remote(self) -> List[SubscriptionRecord]:
        return self.remote.list()

    def purge_inactive(self, older_than_days: int) -> int:
        cutoff = self.clock.now() - timedelta(days=older_than_days)
        removed = self.store.purge_inactive(cutoff)
        self.session.commit()
        return removed


__all__ = [
    "SubscriptionService",
    "new_client_state",
    "normalize_change_types",
    "serialize_remote",
    "serialize_subscription",
]
