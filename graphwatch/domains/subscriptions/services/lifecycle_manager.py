"""Subscription renewal: ACTIVE -> RENEWING -> ACTIVE | EXPIRED."""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from graphwatch.core.contracts import Alerter, ClockSource, RemoteSubscriptionAPI, SubscriptionStore
from graphwatch.core.errors import FatalUpstream, InternalStoreFailure, TransientUpstream
from graphwatch.core.records import SubscriptionAlert, SubscriptionRecord
from graphwatch.domains.subscriptions.models.subscription import STATE_EXPIRED
from graphwatch.extensions import db
from graphwatch.platform.outbox.models import OutboxMessage

logger = logging.getLogger(__name__)

OUTCOME_RENEWED = "renewed"
OUTCOME_REJECTED = "rejected"
OUTCOME_FAILED = "failed"

_PARENS = re.compile(r"\(.*\)$")


def resource_class(resource_path: str, known: Sequence[str]) -> str:
    """Best matching lifetime class for a resource path, 'default' otherwise."""
    path = (resource_path or "").split("?", 1)[0]
    segments = [_PARENS.sub("", s).lower() for s in path.split("/") if s]
    for segment in reversed(segments):
        for key in known:
            if key == "default":
                continue
            if segment == key or segment == key + "s" or key == segment + "s":
                return key
    return "default"


@dataclass
class RenewalPolicy:
    """Timing knobs for renewal, built from app config."""

    lookahead: timedelta = timedelta(days=2)
    max_lifetimes: Dict[str, int] = field(default_factory=lambda: {"default": 4230})
    desired_lifetime: timedelta = timedelta(minutes=4230)
    backoff_base: float = 1.0
    backoff_cap: float = 300.0
    max_attempts: int = 5
    expiry_grace: timedelta = timedelta(hours=1)
    concurrency: int = 4
    interval: float = 3600.0
    lease: timedelta = timedelta(minutes=15)
    batch_size: int = 100

    @classmethod
    def from_config(cls, config: Mapping) -> "RenewalPolicy":
        return cls(
            lookahead=timedelta(minutes=int(config.get("RENEWAL_LOOKAHEAD_MINUTES", 2880))),
            max_lifetimes=dict(config.get("SUBSCRIPTION_MAX_LIFETIME_MINUTES") or {"default": 4230}),
            desired_lifetime=timedelta(minutes=int(config.get("SUBSCRIPTION_DESIRED_LIFETIME_MINUTES", 4230))),
            backoff_base=float(config.get("RENEWAL_BACKOFF_BASE_SECONDS", 1)),
            backoff_cap=float(config.get("RENEWAL_BACKOFF_CAP_SECONDS", 300)),
            max_attempts=int(config.get("RENEWAL_MAX_ATTEMPTS", 5)),
            expiry_grace=timedelta(minutes=int(config.get("RENEWAL_EXPIRY_GRACE_MINUTES", 60))),
            concurrency=int(config.get("RENEWAL_CONCURRENCY", 4)),
            interval=float(config.get("RENEWAL_INTERVAL_SECONDS", 3600)),
            lease=timedelta(minutes=int(config.get("RENEWAL_LEASE_MINUTES", 15))),
        )

    def max_lifetime_for(self, resource_path: str) -> timedelta:
        key = resource_class(resource_path, list(self.max_lifetimes))
        minutes = self.max_lifetimes.get(key, self.max_lifetimes.get("default", 4230))
        return timedelta(minutes=int(minutes))

    def target_expiry(self, resource_path: str, now: datetime, desired: Optional[timedelta] = None) -> datetime:
        """min(now + provider ceiling, now + desired lifetime)."""
        wanted = desired if desired is not None else self.desired_lifetime
        return now + min(self.max_lifetime_for(resource_path), wanted)

    def backoff(self, attempt: int) -> float:
        """Delay after failed attempt `attempt` (1-indexed): base * 2^(n-1), capped."""
        return min(self.backoff_cap, self.backoff_base * (2 ** max(attempt - 1, 0)))


@dataclass
class RenewalOutcome:
    subscription_id: str
    status: str
    attempts: int
    new_expiry: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class RenewalReport:
    claimed: int = 0
    renewed: int = 0
    deferred: int = 0
    expired: int = 0
    outcomes: List[RenewalOutcome] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "claimed": self.claimed,
            "renewed": self.renewed,
            "deferred": self.deferred,
            "expired": self.expired,
        }


class SubscriptionLifecycleManager:
    """
    Renews subscriptions before they lapse.

    A tick claims due records in the store (marking them 'renewing', so the
    same record is never renewed twice concurrently), issues the upstream
    renewals in parallel up to `policy.concurrency`, and writes results back on
    the calling thread. Remote calls retry transient failures with capped
    exponential backoff; an upstream rejection is terminal. A record that stays
    unrenewed within `expiry_grace` of its expiry is marked inactive and an
    alert is raised.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        remote: RemoteSubscriptionAPI,
        clock: ClockSource,
        alerter: Alerter,
        policy: Optional[RenewalPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        session=None,
    ) -> None:
        self.store = store
        self.remote = remote
        self.clock = clock
        self.alerter = alerter
        self.policy = policy or RenewalPolicy()
        self.sleep = sleep
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def tick(self) -> RenewalReport:
        report = RenewalReport()
        now = self.clock.now()
        try:
            claimed = list(self.store.claim_due(now + self.policy.lookahead, now, self.policy.batch_size))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise InternalStoreFailure("could not claim subscriptions for renewal") from exc

        report.claimed = len(claimed)
        if not claimed:
            logger.debug("Renewal tick: nothing due")
            return report

        outcomes = self._renew_all(claimed)
        for record, outcome in zip(claimed, outcomes):
            self._apply(record, outcome)
            report.outcomes.append(outcome)
            if outcome.status == OUTCOME_RENEWED:
                report.renewed += 1
            elif outcome.status == OUTCOME_FAILED and not self._lapsed(record, outcome):
                report.deferred += 1
            else:
                report.expired += 1

        logger.info("Renewal tick complete: %s", report.as_dict())
        return report

    def renew_now(self, subscription_id: str) -> Optional[RenewalOutcome]:
        """Renew one record immediately; None when inactive or already being renewed."""
        now = self.clock.now()
        try:
            record = self.store.claim(subscription_id, now)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise InternalStoreFailure(f"could not claim subscription {subscription_id}") from exc
        if record is None:
            return None
        outcome = self._renew_remote(record)
        self._apply(record, outcome)
        return outcome

    def handle_reauthorization(self, message: OutboxMessage) -> None:
        subscription_id = (message.payload or {}).get("subscription_id")
        if not subscription_id:
            return
        outcome = self.renew_now(subscription_id)
        if outcome is None:
            logger.info("Reauthorization for %s skipped (inactive or already renewing)", subscription_id)

    def _renew_all(self, records: List[SubscriptionRecord]) -> List[RenewalOutcome]:
        workers = max(1, min(self.policy.concurrency, len(records)))
        if workers == 1:
            return [self._renew_remote(record) for record in records]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="renewal") as pool:
            return list(pool.map(self._renew_remote, records))

    def _renew_remote(self, record: SubscriptionRecord) -> RenewalOutcome:
        """Upstream calls only; no database access (runs on pool threads)."""
        last_error: Optional[Exception] = None
        attempts = 0
        while attempts < self.policy.max_attempts:
            attempts += 1
            target = self.policy.target_expiry(record.resource_path, self.clock.now())
            try:
                granted = self.remote.renew(record.id, target)
                return RenewalOutcome(record.id, OUTCOME_RENEWED, attempts, new_expiry=granted or target)
            except FatalUpstream as exc:
                return RenewalOutcome(record.id, OUTCOME_REJECTED, attempts, error=str(exc))
            except TransientUpstream as exc:
                last_error = exc
                if attempts >= self.policy.max_attempts:
                    break
                delay = min(
                    self.policy.backoff_cap,
                    max(self.policy.backoff(attempts), float(exc.retry_after or 0)),
                )
                logger.warning(
                    "Renewal of %s failed (attempt %s/%s), retrying in %.1fs: %s",
                    record.id,
                    attempts,
                    self.policy.max_attempts,
                    delay,
                    exc,
                )
                self.sleep(delay)
            except Exception as exc:
                logger.exception("Renewal of %s failed unexpectedly", record.id)
                return RenewalOutcome(record.id, OUTCOME_FAILED, attempts, error=f"{type(exc).__name__}: {exc}")
        return RenewalOutcome(record.id, OUTCOME_FAILED, attempts, error=str(last_error))

    def _lapsed(self, record: SubscriptionRecord, outcome: RenewalOutcome) -> bool:
        return outcome.status == OUTCOME_FAILED and record.expires_at - self.clock.now() <= self.policy.expiry_grace

    def _apply(self, record: SubscriptionRecord, outcome: RenewalOutcome) -> None:
        now = self.clock.now()
        try:
            if outcome.status == OUTCOME_RENEWED:
                self.store.complete_renewal(record.id, outcome.new_expiry, now)
                logger.info("Subscription %s renewed until %s", record.id, outcome.new_expiry)
            elif outcome.status == OUTCOME_REJECTED or self._lapsed(record, outcome):
                reason = "renewal_rejected" if outcome.status == OUTCOME_REJECTED else "renewal_exhausted"
                self.store.deactivate(record.id, STATE_EXPIRED, reason=outcome.error or reason, now=now)
                self.alerter.alert(
                    SubscriptionAlert(
                        subscription_id=record.id,
                        resource_path=record.resource_path,
                        reason=reason,
                        expires_at=record.expires_at,
                        raised_at=now,
                        details={"error": outcome.error or "", "attempts": str(outcome.attempts)},
                    )
                )
            else:
                self.store.release(record.id, outcome.error or "renewal failed")
                logger.warning(
                    "Subscription %s not renewed after %s attempts; expires %s, will retry next tick",
                    record.id,
                    outcome.attempts,
                    record.expires_at,
                )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Could not record renewal outcome for %s", record.id)
            raise InternalStoreFailure(f"renewal outcome for {record.id} not stored") from exc


__all__ = [
    "RenewalOutcome",
    "RenewalPolicy",
    "RenewalReport",
    "SubscriptionLifecycleManager",
    "resource_class",
]
