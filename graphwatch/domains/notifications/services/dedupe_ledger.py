"""Processed-notification ledger (SQLAlchemy-backed DedupeLedger)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from graphwatch.domains.notifications.models.fingerprint import NotificationFingerprint
from graphwatch.domains.notifications.services._upsert import insert_if_absent
from graphwatch.extensions import db

logger = logging.getLogger(__name__)


class DedupeLedger:
    """
    Set of fingerprints with per-entry expiry.

    `try_insert` is an atomic check-and-set: exactly one of several concurrent
    callers with the same fingerprint gets True. An expired entry counts as
    absent. Methods do not commit.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def try_insert(
        self,
        fingerprint: str,
        expires_at: datetime,
        now: datetime,
        subscription_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        etag: Optional[str] = None,
    ) -> bool:
        table = NotificationFingerprint.__table__
        self.session.execute(
            table.delete().where(
                table.c.fingerprint == fingerprint,
                table.c.expires_at <= now,
            )
        )
        return insert_if_absent(
            self.session,
            table,
            {
                "fingerprint": fingerprint,
                "subscription_id": subscription_id,
                "resource_id": resource_id,
                "etag": etag,
                "expires_at": expires_at,
                "created_at": now,
            },
            key="fingerprint",
        )

    def contains(self, fingerprint: str, now: datetime) -> bool:
        table = NotificationFingerprint.__table__
        row = self.session.execute(
            table.select().where(table.c.fingerprint == fingerprint, table.c.expires_at > now)
        ).first()
        return row is not None

    def remove(self, fingerprint: str) -> bool:
        table = NotificationFingerprint.__table__
        result = self.session.execute(table.delete().where(table.c.fingerprint == fingerprint))
        return result.rowcount > 0

    def purge_expired(self, now: datetime) -> int:
        table = NotificationFingerprint.__table__
        result = self.session.execute(table.delete().where(table.c.expires_at <= now))
        return result.rowcount or 0


__all__ = ["DedupeLedger"]
