from __future__ import annotations

from typing import Dict, Optional
from unittest import mock

import pytest

from graphwatch.core.errors import SnapshotConflict
from graphwatch.core.records import NotificationEnvelope, ResourceSnapshot
from graphwatch.domains.notifications.services.processing_service import ChangeProcessor
from graphwatch.tests.fakes import FakeFetcher, RecordingNotifier

pytestmark = pytest.mark.unit


class MemorySnapshots:
    """Versioned snapshot store; `before_replace` lets a test slip in a concurrent write."""

    def __init__(self) -> None:
        self.rows: Dict[str, ResourceSnapshot] = {}
        self.replace_calls = 0
        self.before_replace = None

    def get(self, resource_id: str) -> Optional[ResourceSnapshot]:
        return self.rows.get(resource_id)

    def replace(self, snapshot: ResourceSnapshot, expected_version: Optional[int]) -> ResourceSnapshot:
        self.replace_calls += 1
        if self.before_replace is not None:
            hook, self.before_replace = self.before_replace, None
            hook(self)
        stored = self.rows.get(snapshot.resource_id)
        current_version = stored.version if stored else None
        if current_version != expected_version:
            raise SnapshotConflict(f"{snapshot.resource_id} moved past version {expected_version}")
        written = snapshot.with_version((expected_version or 0) + 1)
        self.rows[snapshot.resource_id] = written
        return written

    def evict(self, resource_id: str) -> bool:
        return self.rows.pop(resource_id, None) is not None

    def put(self, resource_id: str, states: Dict[str, str], version: int, clock) -> None:
        self.rows[resource_id] = ResourceSnapshot(
            resource_id=resource_id,
            etag=f"e{version}",
            attendee_states=states,
            captured_at=clock.now(),
            version=version,
        )


@pytest.fixture()
def snapshots():
    return MemorySnapshots()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def session():
    return mock.Mock()


@pytest.fixture()
def processor(clock, snapshots, notifier, session):
    return ChangeProcessor(
        FakeFetcher(clock),
        snapshots,
        mock.Mock(),
        notifier,
        clock,
        cas_retries=3,
        session=session,
    )


def _envelope(resource_id: str = "ev-1") -> NotificationEnvelope:
    return NotificationEnvelope(
        subscription_id="sub-1",
        change_type="updated",
        resource_id=resource_id,
        etag="e9",
        client_state_claimed="secret1",
    )


def test_lost_race_is_diffed_against_the_winning_snapshot(processor, snapshots, notifier, session, clock):
    snapshots.put("ev-1", {"alice": "accepted"}, version=1, clock=clock)
    # Another worker records alice as tentative between our read and our write.
    snapshots.before_replace = lambda store: store.put("ev-1", {"alice": "tentative"}, version=2, clock=clock)
    processor.fetcher.set("ev-1", {"alice": "declined"})

    events = processor.process(_envelope())

    assert [(e.previous_state, e.new_state) for e in events] == [("tentative", "declined")]
    assert notifier.events == events
    assert snapshots.replace_calls == 2
    assert snapshots.rows["ev-1"].version == 3
    assert dict(snapshots.rows["ev-1"].attendee_states) == {"alice": "declined"}
    session.rollback.assert_called_once_with()
    session.commit.assert_called_once_with()


def test_race_that_converges_emits_nothing(processor, snapshots, notifier, clock):
    snapshots.put("ev-1", {"alice": "accepted"}, version=1, clock=clock)
    snapshots.before_replace = lambda store: store.put("ev-1", {"alice": "declined"}, version=2, clock=clock)
    processor.fetcher.set("ev-1", {"alice": "declined"})

    assert processor.process(_envelope()) == []
    assert notifier.events == []


def test_gives_up_after_configured_attempts(processor, snapshots, notifier, session, clock):
    snapshots.put("ev-1", {"alice": "accepted"}, version=1, clock=clock)
    current = ResourceSnapshot(
        resource_id="ev-1",
        etag="e2",
        attendee_states={"alice": "declined"},
        captured_at=clock.now(),
    )

    with mock.patch.object(snapshots, "replace", side_effect=SnapshotConflict("moved")) as replace:
        with pytest.raises(SnapshotConflict, match="after 3 attempts"):
            processor.record(current)

    assert replace.call_count == 3
    assert session.rollback.call_count == 3
    session.commit.assert_not_called()
    assert notifier.events == []


def test_first_observation_is_stored_without_events(processor, snapshots, notifier):
    processor.fetcher.set("ev-2", {"alice": "accepted"}, etag="e1")

    assert processor.process(_envelope("ev-2")) == []
    assert snapshots.rows["ev-2"].version == 1
    assert notifier.events == []
