"""Attendee response diff between two snapshots of the same resource."""

from __future__ import annotations

from typing import List, Optional

from graphwatch.core.records import RESPONSE_NONE, ChangeEvent, ResourceSnapshot


def diff(previous: Optional[ResourceSnapshot], current: ResourceSnapshot) -> List[ChangeEvent]:
    """
    Return one ChangeEvent per attendee whose response differs.

    No previous snapshot means a baseline observation and yields nothing.
    Attendees missing from `current` (removed) are not reported. Output is
    sorted by attendee id so repeated calls return identical lists.
    """
    if previous is None:
        return []

    before = previous.attendee_states
    events: List[ChangeEvent] = []
    for attendee_id in sorted(current.attendee_states):
        new_state = current.attendee_states[attendee_id]
        previous_state = before.get(attendee_id, RESPONSE_NONE)
        if new_state != previous_state:
            events.append(
                ChangeEvent(
                    resource_id=current.resource_id,
                    attendee_id=attendee_id,
                    previous_state=previous_state,
                    new_state=new_state,
                    observed_at=current.captured_at,
                )
            )
    return events


__all__ = ["diff"]
