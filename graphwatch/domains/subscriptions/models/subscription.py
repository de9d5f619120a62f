"""Stored upstream subscriptions."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from graphwatch.core.clock import utcnow
from graphwatch.core.records import SubscriptionRecord
from graphwatch.extensions import db

STATE_ACTIVE = "active"
STATE_RENEWING = "renewing"
STATE_EXPIRED = "expired"
STATE_DELETED = "deleted"


class GraphSubscription(db.Model):
    """
    One upstream change-notification subscription.

    `client_state` is generated once at creation and never rewritten; it is the
    shared secret inbound notifications are checked against. Rows are retained
    after deactivation for audit and only removed by an explicit purge.
    """

    __tablename__ = "graph_subscription"
    __table_args__ = (
        db.Index("ix_graph_subscription_active_expiry", "active", "state", "expires_at"),
    )

    id: Mapped[str] = mapped_column(db.String(128), primary_key=True)
    resource_path: Mapped[str] = mapped_column(db.String(512), nullable=False)
    change_types: Mapped[str] = mapped_column(db.String(64), nullable=False, default="created,updated,deleted")
    client_state: Mapped[str] = mapped_column(db.String(128), nullable=False)
    notification_endpoint: Mapped[str] = mapped_column(db.String(1024), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    # Values: 'active', 'renewing', 'expired', 'deleted'
    state: Mapped[str] = mapped_column(db.String(16), nullable=False, default=STATE_ACTIVE)
    active: Mapped[bool] = mapped_column(default=True, nullable=False)

    renewal_started_at: Mapped[datetime | None] = mapped_column()
    last_renewed_at: Mapped[datetime | None] = mapped_column()
    renewal_failures: Mapped[int] = mapped_column(default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(db.String(1024))
    deactivated_at: Mapped[datetime | None] = mapped_column()

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    def to_record(self) -> SubscriptionRecord:
        return SubscriptionRecord(
            id=self.id,
            resource_path=self.resource_path,
            client_state=self.client_state,
            expires_at=self.expires_at,
            notification_endpoint=self.notification_endpoint,
            active=self.active,
            change_types=self.change_types,
            state=self.state,
        )


__all__ = [
    "GraphSubscription",
    "STATE_ACTIVE",
    "STATE_RENEWING",
    "STATE_EXPIRED",
    "STATE_DELETED",
]
