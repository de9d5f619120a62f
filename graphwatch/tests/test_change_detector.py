from __future__ import annotations

from datetime import datetime

import pytest

from graphwatch.core.records import ResourceSnapshot
from graphwatch.domains.notifications.services.change_detector import diff

pytestmark = pytest.mark.unit

T0 = datetime(2026, 10, 17, 9, 0)
T1 = datetime(2026, 10, 17, 9, 5)


def _snap(states, etag="e1", at=T0):
    return ResourceSnapshot(resource_id="ev-1", etag=etag, attendee_states=states, captured_at=at)


def test_first_observation_is_a_baseline():
    assert diff(None, _snap({"alice": "accepted", "bob": "declined"})) == []


def test_identical_states_produce_no_events_even_with_new_etag():
    previous = _snap({"alice": "accepted"}, etag="e1", at=T0)
    current = _snap({"alice": "accepted"}, etag="e2", at=T1)
    assert diff(previous, current) == []


def test_changed_attendee_is_reported_with_both_states():
    events = diff(_snap({"alice": "accepted"}), _snap({"alice": "declined"}, etag="e2", at=T1))

    assert len(events) == 1
    event = events[0]
    assert (event.resource_id, event.attendee_id) == ("ev-1", "alice")
    assert (event.previous_state, event.new_state) == ("accepted", "declined")
    assert event.observed_at == T1


def test_new_attendee_compares_against_none():
    events = diff(_snap({"alice": "accepted"}), _snap({"alice": "accepted", "bob": "tentative"}))
    assert [(e.attendee_id, e.previous_state, e.new_state) for e in events] == [("bob", "none", "tentative")]


def test_new_attendee_that_has_not_responded_is_not_a_change():
    assert diff(_snap({"alice": "accepted"}), _snap({"alice": "accepted", "bob": "none"})) == []


def test_removed_attendee_is_not_reported():
    assert diff(_snap({"alice": "accepted", "bob": "declined"}), _snap({"alice": "accepted"})) == []


def test_diff_is_independent_of_attendee_order():
    previous_a = _snap({"alice": "none", "bob": "none", "carol": "accepted"})
    previous_b = _snap({"carol": "accepted", "bob": "none", "alice": "none"})
    current_a = _snap({"alice": "accepted", "bob": "declined", "carol": "tentative"})
    current_b = _snap({"carol": "tentative", "alice": "accepted", "bob": "declined"})

    first = diff(previous_a, current_a)
    second = diff(previous_b, current_b)

    assert first == second
    assert {e.attendee_id for e in first} == {"alice", "bob", "carol"}


def test_diff_is_repeatable():
    previous = _snap({"alice": "accepted"})
    current = _snap({"alice": "declined"})
    assert diff(previous, current) == diff(previous, current)
