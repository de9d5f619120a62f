"""Synchronous half of notification intake: authenticity, dedupe, durable hand-off."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from graphwatch.core.contracts import Alerter, ClockSource, DedupeLedger, SubscriptionStore
from graphwatch.core.errors import AuthenticityFailure, InternalStoreFailure
from graphwatch.core.records import NotificationEnvelope, SubscriptionAlert, SubscriptionRecord
from graphwatch.domains.notifications.schemas import ChangeNotification
from graphwatch.domains.subscriptions.models.subscription import STATE_EXPIRED
from graphwatch.extensions import db
from graphwatch.platform.outbox.services import (
    NOTIFICATION_ACCEPTED,
    SUBSCRIPTION_REAUTHORIZATION_REQUESTED,
    enqueue,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("graphwatch.security")

LIFECYCLE_REAUTHORIZATION_REQUIRED = "reauthorizationRequired"
LIFECYCLE_SUBSCRIPTION_REMOVED = "subscriptionRemoved"
LIFECYCLE_MISSED = "missed"


@dataclass
class IntakeResult:
    accepted: int = 0
    duplicates: int = 0
    rejected: int = 0
    invalid: int = 0
    lifecycle: int = 0
    message_ids: List[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "duplicates": self.duplicates,
            "rejected": self.rejected,
            "invalid": self.invalid,
            "lifecycle": self.lifecycle,
        }


def client_state_matches(claimed: Optional[str], expected: str) -> bool:
    """Constant-time comparison; a missing claim never matches."""
    if claimed is None:
        return False
    return hmac.compare_digest(claimed.encode("utf-8"), expected.encode("utf-8"))


class NotificationIntake:
    """
    Accepts a decoded batch within the inbound request.

    For every envelope: authenticate against the stored subscription, insert
    the dedupe fingerprint, and stage a `graph.notification.accepted` work item
    in the same transaction. The transaction commits before the caller answers
    202, so a crash afterwards never loses an accepted envelope and a provider
    retry of a committed envelope is recognized as a duplicate.
    """

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        ledger: DedupeLedger,
        clock: ClockSource,
        alerter: Alerter,
        retention: timedelta = timedelta(hours=24),
        session=None,
    ) -> None:
        self.subscriptions = subscriptions
        self.ledger = ledger
        self.clock = clock
        self.alerter = alerter
        self.retention = retention
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def authenticate(self, envelope: NotificationEnvelope) -> SubscriptionRecord:
        record = self.subscriptions.get(envelope.subscription_id)
        if record is None:
            raise AuthenticityFailure(envelope.subscription_id, "unknown_subscription")
        if not record.active:
            raise AuthenticityFailure(envelope.subscription_id, "inactive_subscription")
        if not client_state_matches(envelope.client_state_claimed, record.client_state):
            raise AuthenticityFailure(envelope.subscription_id, "client_state_mismatch")
        return record

    def accept(self, items: Sequence[Any]) -> IntakeResult:
        result = IntakeResult()
        try:
            for raw in items:
                self._accept_one(raw, result)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Notification batch could not be persisted")
            raise InternalStoreFailure("notification batch not persisted") from exc
        logger.info("Notification batch accepted: %s", result.as_dict())
        return result

    def _accept_one(self, raw: Any, result: IntakeResult) -> None:
        try:
            envelope = ChangeNotification.model_validate(raw).to_envelope()
        except (ValidationError, ValueError) as exc:
            result.invalid += 1
            logger.warning("Discarding malformed notification: %s", exc)
            return

        try:
            record = self.authenticate(envelope)
        except AuthenticityFailure as exc:
            result.rejected += 1
            security_logger.warning(
                "Rejected notification (%s) subscription=%s resource=%s tenant=%s",
                exc.reason,
                envelope.subscription_id,
                envelope.resource_id,
                envelope.tenant_id,
            )
            return

        if envelope.lifecycle_event:
            result.lifecycle += 1
            self._accept_lifecycle(envelope, record)
            return

        now = self.clock.now()
        fresh = self.ledger.try_insert(
            envelope.fingerprint,
            expires_at=now + self.retention,
            now=now,
            subscription_id=envelope.subscription_id,
            resource_id=envelope.resource_id,
            etag=envelope.etag,
        )
        if not fresh:
            result.duplicates += 1
            logger.debug(
                "Duplicate delivery ignored subscription=%s resource=%s etag=%s",
                envelope.subscription_id,
                envelope.resource_id,
                envelope.etag,
            )
            return

        payload = envelope.to_payload()
        if not payload["resource_path"]:
            payload["resource_path"] = f"{record.resource_path.rstrip('/')}/{envelope.resource_id}"
        message = enqueue(NOTIFICATION_ACCEPTED, payload, session=self.session)
        self.session.flush()
        result.accepted += 1
        result.message_ids.append(message.id)

    def _accept_lifecycle(self, envelope: NotificationEnvelope, record: SubscriptionRecord) -> None:
        event = envelope.lifecycle_event
        if event == LIFECYCLE_REAUTHORIZATION_REQUIRED:
            logger.info("Reauthorization requested for subscription %s", record.id)
            enqueue(
                SUBSCRIPTION_REAUTHORIZATION_REQUESTED,
                {"subscription_id": record.id},
                session=self.session,
            )
        elif event == LIFECYCLE_SUBSCRIPTION_REMOVED:
            now = self.clock.now()
            self.subscriptions.deactivate(record.id, STATE_EXPIRED, reason="removed_by_provider", now=now)
            self.alerter.alert(
                SubscriptionAlert(
                    subscription_id=record.id,
                    resource_path=record.resource_path,
                    reason="removed_by_provider",
                    expires_at=record.expires_at,
                    raised_at=now,
                )
            )
        elif event == LIFECYCLE_MISSED:
            logger.warning("Provider reports missed notifications for subscription %s", record.id)
        else:
            logger.warning("Unknown lifecycle event %r for subscription %s", event, record.id)


__all__ = ["IntakeResult", "NotificationIntake", "client_state_matches"]
