"""Persistence for subscription records (SQLAlchemy-backed SubscriptionStore)."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import and_, or_

from graphwatch.core.clock import utcnow
from graphwatch.core.records import SubscriptionRecord
from graphwatch.domains.subscriptions.models.subscription import (
    STATE_ACTIVE,
    STATE_RENEWING,
    GraphSubscription,
)
from graphwatch.extensions import db


class SubscriptionRepository:
    """
    Subscription rows keyed by provider id.

    Renewal claims flip `state` to 'renewing' under SKIP LOCKED so a record is
    never renewed by two workers at once; a claim older than `lease` is treated
    as abandoned and may be taken again. Methods do not commit; callers own the
    transaction.
    """

    def __init__(self, session=None, lease: timedelta = timedelta(minutes=15)):
        self._session = session
        self._lease = lease

    @property
    def session(self):
        return self._session or db.session

    def _row(self, subscription_id: str, for_update: bool = False) -> Optional[GraphSubscription]:
        query = self.session.query(GraphSubscription).filter(GraphSubscription.id == subscription_id)
        if for_update:
            query = query.with_for_update()
        return query.one_or_none()

    def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        row = self._row(subscription_id)
        return row.to_record() if row else None

    def add(self, record: SubscriptionRecord) -> SubscriptionRecord:
        row = GraphSubscription(
            id=record.id,
            resource_path=record.resource_path,
            change_types=record.change_types,
            client_state=record.client_state,
            notification_endpoint=record.notification_endpoint,
            expires_at=record.expires_at,
            state=STATE_ACTIVE if record.active else record.state,
            active=record.active,
        )
        self.session.add(row)
        self.session.flush()
        return row.to_record()

    def list_rows(self, include_inactive: bool = True) -> List[GraphSubscription]:
        query = self.session.query(GraphSubscription)
        if not include_inactive:
            query = query.filter(GraphSubscription.active.is_(True))
        return query.order_by(GraphSubscription.expires_at).all()

    def get_row(self, subscription_id: str) -> Optional[GraphSubscription]:
        return self._row(subscription_id)

    def _claimable(self, now: datetime):
        stale_before = now - self._lease
        return and_(
            GraphSubscription.active.is_(True),
            or_(
                GraphSubscription.state == STATE_ACTIVE,
                and_(
                    GraphSubscription.state == STATE_RENEWING,
                    GraphSubscription.renewal_started_at <= stale_before,
                ),
            ),
        )

    def claim_due(self, due_before: datetime, now: datetime, limit: int = 100) -> Sequence[SubscriptionRecord]:
        """Claim active records expiring before `due_before` for renewal."""
        rows = (
            self.session.query(GraphSubscription)
            .filter(self._claimable(now), GraphSubscription.expires_at <= due_before)
            .order_by(GraphSubscription.expires_at)
            .with_for_update(skip_locked=True)
            .limit(limit)
            .all()
        )
        for row in rows:
            row.state = STATE_RENEWING
            row.renewal_started_at = now
        self.session.flush()
        return [row.to_record() for row in rows]

    def claim(self, subscription_id: str, now: datetime) -> Optional[SubscriptionRecord]:
        """Claim one record regardless of expiry; None when inactive or already claimed."""
        row = (
            self.session.query(GraphSubscription)
            .filter(GraphSubscription.id == subscription_id, self._claimable(now))
            .with_for_update(skip_locked=True)
            .one_or_none()
        )
        if row is None:
            return None
        row.state = STATE_RENEWING
        row.renewal_started_at = now
        self.session.flush()
        return row.to_record()

    def complete_renewal(self, subscription_id: str, new_expiry: datetime, now: datetime) -> None:
        row = self._row(subscription_id, for_update=True)
        if row is None:
            return
        row.expires_at = new_expiry
        row.last_renewed_at = now
        row.renewal_started_at = None
        row.renewal_failures = 0
        row.last_error = None
        if row.active:
            row.state = STATE_ACTIVE

    def release(self, subscription_id: str, error: str) -> None:
        """Return a claimed record to 'active' after a non-terminal renewal failure."""
        row = self._row(subscription_id, for_update=True)
        if row is None:
            return
        row.renewal_failures = (row.renewal_failures or 0) + 1
        row.last_error = (error or "")[:1024]
        row.renewal_started_at = None
        if row.active:
            row.state = STATE_ACTIVE

    def deactivate(
        self,
        subscription_id: str,
        state: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        row = self._row(subscription_id, for_update=True)
        if row is None:
            return
        row.active = False
        row.state = state
        row.renewal_started_at = None
        if row.deactivated_at is None:
            row.deactivated_at = now or utcnow()
        if reason:
            row.last_error = reason[:1024]

    def purge_inactive(self, older_than: datetime) -> int:
        return (
            self.session.query(GraphSubscription)
            .filter(
                GraphSubscription.active.is_(False),
                GraphSubscription.deactivated_at.isnot(None),
                GraphSubscription.deactivated_at < older_than,
            )
            .delete(synchronize_session=False)
        )


__all__ = ["SubscriptionRepository"]
