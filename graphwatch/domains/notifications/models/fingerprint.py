"""Processed-notification fingerprints with TTL."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from graphwatch.core.clock import utcnow
from graphwatch.extensions import db


class NotificationFingerprint(db.Model):
    __tablename__ = "notification_fingerprint"

    fingerprint: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    subscription_id: Mapped[str | None] = mapped_column(db.String(128))
    resource_id: Mapped[str | None] = mapped_column(db.String(512))
    etag: Mapped[str | None] = mapped_column(db.String(256))
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
