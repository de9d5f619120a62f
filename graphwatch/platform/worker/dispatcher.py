"""Outbox dispatcher helpers and worker loop."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from graphwatch.core.clock import utcnow
from graphwatch.core.errors import FatalUpstream
from graphwatch.extensions import db
from graphwatch.platform.outbox.models import OutboxMessage
from graphwatch.platform.outbox.services import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RETRY,
    STATUS_SENDING,
    STATUS_SENT,
)
from graphwatch.platform.worker.config import DispatchConfig

logger = logging.getLogger(__name__)

MessageHandler = Callable[[OutboxMessage], None]
FailureHook = Callable[[OutboxMessage, Exception], None]


class OutboxRouter:
    """Maps outbox event types to handlers and terminal-failure hooks."""

    def __init__(self) -> None:
        self._handlers: Dict[str, MessageHandler] = {}
        self._failure_hooks: Dict[str, FailureHook] = {}

    def register(
        self,
        event_type: str,
        handler: MessageHandler,
        on_failed: Optional[FailureHook] = None,
    ) -> None:
        self._handlers[event_type] = handler
        if on_failed is not None:
            self._failure_hooks[event_type] = on_failed

    def dispatch(self, message: OutboxMessage) -> None:
        handler = self._handlers.get(message.event_type)
        if handler is None:
            raise LookupError(f"no handler for {message.event_type}")
        handler(message)

    def failed(self, message: OutboxMessage, exc: Exception) -> None:
        hook = self._failure_hooks.get(message.event_type)
        if hook is not None:
            hook(message, exc)


def claim_ready_messages(
    session,
    batch_size: int,
    now: Optional[datetime] = None,
    lease_seconds: float = 60.0,
    ids: Optional[Iterable[int]] = None,
) -> List[OutboxMessage]:
    """
    Lock and return ready messages using SKIP LOCKED, ordered by available_at.

    Ready means pending/retry and due, or 'sending' with an expired lease (the
    previous claimant died). Claimed rows move to 'sending', attempts increment
    and available_at becomes the lease deadline.
    """
    now = now or utcnow()
    query = session.query(OutboxMessage).filter(
        OutboxMessage.available_at <= now,
        OutboxMessage.status.in_((STATUS_PENDING, STATUS_RETRY, STATUS_SENDING)),
    )
    if ids is not None:
        query = query.filter(OutboxMessage.id.in_(list(ids)))
    messages = (
        query.order_by(OutboxMessage.available_at)
        .with_for_update(skip_locked=True)
        .limit(batch_size)
        .all()
    )
    lease_until = now + timedelta(seconds=lease_seconds)
    for message in messages:
        message.status = STATUS_SENDING
        message.attempts = (message.attempts or 0) + 1
        message.available_at = lease_until
    return messages


def _apply_failure_backoff(message: OutboxMessage, exc: Exception, config: DispatchConfig) -> bool:
    """Schedule a retry or fail the message. Returns True when it is now terminal."""
    attempts = message.attempts or 1
    message.last_error = f"{type(exc).__name__}: {exc}"[:4000]

    if isinstance(exc, FatalUpstream) or attempts >= config.max_attempts:
        message.status = STATUS_FAILED
        return True

    delay_seconds = config.retry_delay(attempts, getattr(exc, "retry_after", None))
    message.available_at = utcnow() + timedelta(seconds=delay_seconds)
    message.status = STATUS_RETRY
    return False


def process_ready_batch(
    send_fn: Callable[[OutboxMessage], None],
    config: DispatchConfig,
    session=None,
    on_failed: Optional[FailureHook] = None,
    ids: Optional[Iterable[int]] = None,
) -> int:
    """
    Claim ready messages, dispatch via send_fn, and update statuses.

    The claim is committed before dispatch so slow handlers do not hold row
    locks; handlers may commit their own work. Returns number of messages
    processed (sent or failed).
    """
    session = session or db.session
    try:
        messages = claim_ready_messages(
            session,
            batch_size=config.batch_size,
            lease_seconds=config.lease_seconds,
            ids=ids,
        )
        claimed_ids = [m.id for m in messages]
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Database error while claiming outbox batch")
        return 0

    processed = 0
    for message_id in claimed_ids:
        message = session.get(OutboxMessage, message_id)
        if message is None or message.status == STATUS_SENT:
            continue
        try:
            send_fn(message)
            message = session.get(OutboxMessage, message_id)
            message.status = STATUS_SENT
            message.last_error = None
            session.commit()
        except Exception as exc:
            session.rollback()
            message = session.get(OutboxMessage, message_id)
            if message is None:
                continue
            try:
                terminal = _apply_failure_backoff(message, exc, config)
                if terminal:
                    logger.error(
                        "Outbox message %s (%s) failed permanently after %s attempts: %s",
                        message.id,
                        message.event_type,
                        message.attempts,
                        exc,
                    )
                    if on_failed is not None:
                        on_failed(message, exc)
                else:
                    logger.warning(
                        "Outbox message %s (%s) attempt %s failed, retry at %s: %s",
                        message.id,
                        message.event_type,
                        message.attempts,
                        message.available_at,
                        exc,
                    )
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.exception("Database error while recording outbox failure for %s", message_id)
                continue
        processed += 1

    return processed


def dispatch_ready(router: OutboxRouter, config: DispatchConfig, session=None, ids=None) -> int:
    return process_ready_batch(router.dispatch, config, session=session, on_failed=router.failed, ids=ids)
