"""Last-known resource snapshots (SQLAlchemy-backed ChangeSnapshotStore)."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select

from graphwatch.core.errors import SnapshotConflict
from graphwatch.core.records import ResourceSnapshot
from graphwatch.domains.notifications.models.snapshot import ResourceSnapshotRow
from graphwatch.domains.notifications.services._upsert import insert_if_absent
from graphwatch.extensions import db


class SnapshotRepository:
    """
    One snapshot per resource, replaced wholesale.

    `replace` is a compare-and-swap on `version`: pass the version that was read
    (None when no snapshot existed). A lost race raises SnapshotConflict and
    writes nothing. Methods do not commit.
    """

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def get(self, resource_id: str) -> Optional[ResourceSnapshot]:
        row = self.session.execute(
            select(ResourceSnapshotRow)
            .where(ResourceSnapshotRow.resource_id == resource_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return row.to_snapshot() if row else None

    def replace(self, snapshot: ResourceSnapshot, expected_version: Optional[int]) -> ResourceSnapshot:
        table = ResourceSnapshotRow.__table__
        states = dict(snapshot.attendee_states)
        if expected_version is None:
            inserted = insert_if_absent(
                self.session,
                table,
                {
                    "resource_id": snapshot.resource_id,
                    "etag": snapshot.etag or "",
                    "attendee_states": states,
                    "captured_at": snapshot.captured_at,
                    "version": 1,
                },
                key="resource_id",
            )
            if not inserted:
                raise SnapshotConflict(f"snapshot for {snapshot.resource_id} created concurrently")
            return snapshot.with_version(1)

        result = self.session.execute(
            table.update()
            .where(
                table.c.resource_id == snapshot.resource_id,
                table.c.version == expected_version,
            )
            .values(
                etag=snapshot.etag or "",
                attendee_states=states,
                captured_at=snapshot.captured_at,
                version=expected_version + 1,
            )
        )
        if result.rowcount != 1:
            raise SnapshotConflict(
                f"snapshot for {snapshot.resource_id} moved past version {expected_version}"
            )
        return snapshot.with_version(expected_version + 1)

    def evict(self, resource_id: str) -> bool:
        table = ResourceSnapshotRow.__table__
        result = self.session.execute(table.delete().where(table.c.resource_id == resource_id))
        return result.rowcount > 0


__all__ = ["SnapshotRepository"]
