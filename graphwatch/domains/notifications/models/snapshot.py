"""Last known resource snapshot, one row per resource."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from graphwatch.core.records import ResourceSnapshot
from graphwatch.extensions import db


class ResourceSnapshotRow(db.Model):
    """
    Latest full attendee state of a watched resource.

    `version` increases by one on every replacement and is the compare-and-swap
    token for concurrent writers.
    """

    __tablename__ = "resource_snapshot"

    resource_id: Mapped[str] = mapped_column(db.String(512), primary_key=True)
    etag: Mapped[str] = mapped_column(db.String(256), nullable=False, default="")
    attendee_states: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    captured_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def to_snapshot(self) -> ResourceSnapshot:
        return ResourceSnapshot(
            resource_id=self.resource_id,
            etag=self.etag or "",
            attendee_states=dict(self.attendee_states or {}),
            captured_at=self.captured_at,
            version=self.version,
        )
