"""Detached half of notification intake: fetch, diff, persist, emit."""

from __future__ import annotations

import logging
from typing import List

from graphwatch.core.contracts import (
    ChangeSnapshotStore,
    ClockSource,
    DedupeLedger,
    Notifier,
    ResourceFetcher,
)
from graphwatch.core.errors import SnapshotConflict
from graphwatch.core.records import CHANGE_DELETED, ChangeEvent, NotificationEnvelope, ResourceSnapshot
from graphwatch.domains.notifications.services.change_detector import diff
from graphwatch.extensions import db
from graphwatch.platform.outbox.models import OutboxMessage

logger = logging.getLogger(__name__)


class ChangeProcessor:
    """
    Turns an accepted envelope into ChangeEvents.

    Snapshot read, diff and write are serialized per resource through the
    store's compare-and-swap: a lost race re-reads and re-diffs, so two
    concurrent notifications never both diff against the same stale snapshot.
    Events are staged through the Notifier in the same transaction as the
    winning snapshot write.
    """

    def __init__(
        self,
        fetcher: ResourceFetcher,
        snapshots: ChangeSnapshotStore,
        ledger: DedupeLedger,
        notifier: Notifier,
        clock: ClockSource,
        cas_retries: int = 3,
        session=None,
    ) -> None:
        self.fetcher = fetcher
        self.snapshots = snapshots
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock
        self.cas_retries = max(cas_retries, 1)
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def process(self, envelope: NotificationEnvelope) -> List[ChangeEvent]:
        if envelope.change_type == CHANGE_DELETED:
            evicted = self.snapshots.evict(envelope.resource_id)
            self.session.commit()
            logger.info("Resource %s deleted upstream (snapshot evicted=%s)", envelope.resource_id, evicted)
            return []

        # Network call happens outside any open write.
        current = self.fetcher.fetch(envelope.resource_id, envelope.resource_path)
        if not current.etag and envelope.etag:
            current = ResourceSnapshot(
                resource_id=current.resource_id,
                etag=envelope.etag,
                attendee_states=current.attendee_states,
                captured_at=current.captured_at,
            )
        return self.record(current)

    def record(self, current: ResourceSnapshot) -> List[ChangeEvent]:
        """Diff `current` against the stored snapshot, persist it and emit events."""
        for attempt in range(1, self.cas_retries + 1):
            previous = self.snapshots.get(current.resource_id)
            events = diff(previous, current)
            try:
                self.snapshots.replace(current, previous.version if previous else None)
            except SnapshotConflict:
                self.session.rollback()
                logger.info(
                    "Snapshot race on %s (attempt %s/%s); re-reading",
                    current.resource_id,
                    attempt,
                    self.cas_retries,
                )
                continue
            for event in events:
                self.notifier.emit(event)
            self.session.commit()
            if events:
                logger.info("Resource %s: %s attendee change(s)", current.resource_id, len(events))
            return events
        raise SnapshotConflict(f"gave up on {current.resource_id} after {self.cas_retries} attempts")

    # Outbox hooks

    def handle_message(self, message: OutboxMessage) -> None:
        self.process(NotificationEnvelope.from_payload(message.payload or {}))

    def release_fingerprint(self, message: OutboxMessage, exc: Exception) -> None:
        """Terminal failure: forget the fingerprint so a provider redelivery is processed."""
        fingerprint = (message.payload or {}).get("fingerprint")
        if not fingerprint:
            return
        removed = self.ledger.remove(fingerprint)
        logger.error(
            "Giving up on resource %s (subscription %s): %s; fingerprint released=%s",
            (message.payload or {}).get("resource_id"),
            (message.payload or {}).get("subscription_id"),
            exc,
            removed,
        )


__all__ = ["ChangeProcessor"]
