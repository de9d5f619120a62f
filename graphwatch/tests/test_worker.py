from __future__ import annotations

from datetime import timedelta

import pytest

pytestmark = pytest.mark.integration

from graphwatch.core.event_bus import event_bus
from graphwatch.core.records import ChangeEvent, fingerprint_for
from graphwatch.extensions import db
from graphwatch.platform.outbox.models import OutboxMessage
from graphwatch.platform.outbox.services import ATTENDEE_RESPONSE_CHANGED, OutboxNotifier
from graphwatch.platform.worker.run import run_worker


def test_single_pass_renews_purges_and_dispatches(app, services, make_subscription, remote, clock):
    make_subscription("sub-1", expires_in=timedelta(hours=3))
    services.ledger.try_insert(
        fingerprint_for("s", "r", "e"),
        expires_at=clock.now() - timedelta(minutes=1),
        now=clock.now() - timedelta(hours=2),
    )
    OutboxNotifier().emit(ChangeEvent("ev-1", "alice", "accepted", "declined", clock.now()))
    db.session.commit()

    received = []
    handler = received.append
    event_bus.subscribe(ATTENDEE_RESPONSE_CHANGED, handler)
    try:
        run_worker(app, max_loops=1)
    finally:
        event_bus.unsubscribe(ATTENDEE_RESPONSE_CHANGED, handler)

    assert [sub_id for sub_id, _ in remote.renewals] == ["sub-1"]
    assert not services.ledger.contains(fingerprint_for("s", "r", "e"), clock.now() - timedelta(hours=1))
    (event,) = received
    assert event.payload["attendee_id"] == "alice"
    assert event.payload["new_state"] == "declined"
    message = db.session.query(OutboxMessage).filter_by(event_type=ATTENDEE_RESPONSE_CHANGED).one()
    assert message.status == "sent"


def test_failed_tick_does_not_stop_dispatching(app, services, clock, monkeypatch):
    def broken_tick():
        raise RuntimeError("renewal store unreachable")

    monkeypatch.setattr(services.lifecycle, "tick", broken_tick)
    OutboxNotifier().emit(ChangeEvent("ev-1", "alice", "accepted", "declined", clock.now()))
    db.session.commit()

    run_worker(app, max_loops=1)

    message = db.session.query(OutboxMessage).filter_by(event_type=ATTENDEE_RESPONSE_CHANGED).one()
    assert message.status == "sent"
