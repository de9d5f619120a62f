from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.orm import Query

pytestmark = pytest.mark.integration

from graphwatch.core.clock import utcnow
from graphwatch.core.errors import NotFound, Throttled
from graphwatch.extensions import db
from graphwatch.platform.outbox.models import OutboxMessage
from graphwatch.platform.worker import dispatcher
from graphwatch.platform.worker.config import DispatchConfig


def _config(**overrides) -> DispatchConfig:
    defaults = {
        "batch_size": 5,
        "poll_interval": 0,
        "max_attempts": 2,
        "backoff_seconds": 3,
        "backoff_multiplier": 2,
    }
    defaults.update(overrides)
    return DispatchConfig(**defaults)


def _enqueue(event_type: str = "test.event", status: str = "pending", available_at=None) -> OutboxMessage:
    msg = OutboxMessage(
        event_type=event_type,
        payload={"hello": "world"},
        status=status,
        available_at=available_at or utcnow() - timedelta(seconds=1),
    )
    db.session.add(msg)
    db.session.commit()
    return msg


def test_successful_dispatch_marks_sent_and_increments_attempts(app):
    msg = _enqueue()
    sent_ids: list[int] = []

    processed = dispatcher.process_ready_batch(lambda m: sent_ids.append(m.id), _config())

    db.session.refresh(msg)
    assert processed == 1
    assert sent_ids == [msg.id]
    assert msg.status == "sent"
    assert msg.attempts == 1
    assert msg.last_error is None


def test_claim_ready_messages_uses_skip_locked_and_reserves_once(app, monkeypatch):
    first = _enqueue()
    second = _enqueue(event_type="another.event")

    skip_locked_flags: list[bool | None] = []
    original_with_for_update = Query.with_for_update

    def _wrapped_with_for_update(self, *args, **kwargs):
        skip_locked_flags.append(kwargs.get("skip_locked"))
        return original_with_for_update(self, *args, **kwargs)

    monkeypatch.setattr(Query, "with_for_update", _wrapped_with_for_update)

    claimed = dispatcher.claim_ready_messages(db.session, batch_size=1)
    db.session.commit()
    assert {m.id for m in claimed} == {first.id}
    assert claimed[0].status == "sending"

    claimed_second = dispatcher.claim_ready_messages(db.session, batch_size=2)
    db.session.commit()
    claimed_ids = {m.id for m in claimed_second}
    assert first.id not in claimed_ids
    assert second.id in claimed_ids
    assert True in skip_locked_flags


def test_expired_lease_is_reclaimed(app):
    msg = _enqueue(status="sending", available_at=utcnow() - timedelta(seconds=5))

    claimed = dispatcher.claim_ready_messages(db.session, batch_size=5)
    db.session.commit()

    assert [m.id for m in claimed] == [msg.id]
    assert claimed[0].attempts == 1


def test_failed_dispatch_applies_backoff_and_honors_max_attempts(app):
    msg = _enqueue()
    cfg = _config(max_attempts=2, backoff_seconds=4, backoff_multiplier=2)

    def _send_fail(_):
        raise RuntimeError("boom")

    start = utcnow()
    dispatcher.process_ready_batch(_send_fail, cfg)
    db.session.refresh(msg)
    assert msg.attempts == 1
    assert msg.status == "retry"
    assert msg.available_at >= start + timedelta(seconds=cfg.backoff_seconds)
    assert "boom" in msg.last_error

    # Make available again to trigger final attempt
    msg.available_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    dispatcher.process_ready_batch(_send_fail, cfg)
    db.session.refresh(msg)
    assert msg.attempts == 2
    assert msg.status == "failed"


def test_retry_after_extends_backoff(app):
    msg = _enqueue()
    cfg = _config(max_attempts=5, backoff_seconds=1)

    def _throttled(_):
        raise Throttled("slow down", retry_after=120)

    start = utcnow()
    dispatcher.process_ready_batch(_throttled, cfg)
    db.session.refresh(msg)
    assert msg.status == "retry"
    assert msg.available_at >= start + timedelta(seconds=120)


def test_fatal_error_fails_immediately_and_runs_hook(app):
    msg = _enqueue()
    failures: list[tuple[int, str]] = []

    def _gone(_):
        raise NotFound("gone", status_code=404)

    dispatcher.process_ready_batch(
        _gone,
        _config(max_attempts=5),
        on_failed=lambda m, exc: failures.append((m.id, type(exc).__name__)),
    )
    db.session.refresh(msg)
    assert msg.status == "failed"
    assert msg.attempts == 1
    assert failures == [(msg.id, "NotFound")]


def test_already_sent_message_is_not_dispatched_twice(app):
    msg = _enqueue()
    sent_ids: list[int] = []

    dispatcher.process_ready_batch(lambda m: sent_ids.append(m.id), _config())

    def _should_not_run(_):
        raise AssertionError("duplicate dispatch attempted")

    dispatcher.process_ready_batch(_should_not_run, _config())
    db.session.refresh(msg)
    assert sent_ids == [msg.id]
    assert msg.status == "sent"


def test_router_without_handler_retries_message(app):
    msg = _enqueue(event_type="unknown.event")
    router = dispatcher.OutboxRouter()

    dispatcher.dispatch_ready(router, _config(max_attempts=3))
    db.session.refresh(msg)
    assert msg.status == "retry"
    assert "LookupError" in msg.last_error


def test_dispatch_ready_limits_to_requested_ids(app):
    first = _enqueue()
    second = _enqueue()
    router = dispatcher.OutboxRouter()
    seen: list[int] = []
    router.register("test.event", lambda m: seen.append(m.id))

    dispatcher.dispatch_ready(router, _config(), ids=[second.id])

    assert seen == [second.id]
    db.session.refresh(first)
    assert first.status == "pending"


@pytest.mark.unit
def test_dispatch_config_from_config_and_delays():
    cfg = DispatchConfig.from_config({"OUTBOX_BACKOFF_SECONDS": 2, "OUTBOX_BACKOFF_MULTIPLIER": "3"})

    assert cfg.batch_size == 50
    assert [cfg.backoff_for(n) for n in (1, 2, 3)] == [2.0, 6.0, 18.0]
    assert cfg.retry_delay(1, retry_after=30) == 30.0
    with pytest.raises(ValueError):
        DispatchConfig.from_config({"OUTBOX_MAX_ATTEMPTS": 0})


def test_services_read_dispatch_settings_from_app_config(app, services):
    assert services.dispatch_config.poll_interval == 0.0
    assert services.dispatch_config.batch_size == app.config["OUTBOX_BATCH_SIZE"]
    assert services.dispatch_config.lease_seconds == app.config["OUTBOX_LEASE_SECONDS"]
