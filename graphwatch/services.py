"""Per-app service wiring, stored on `app.extensions["graphwatch"]`."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional

from flask import Flask, current_app

from graphwatch.core.clock import SystemClock
from graphwatch.core.contracts import ClockSource, CredentialProvider, RemoteSubscriptionAPI, ResourceFetcher
from graphwatch.domains.notifications.services.dedupe_ledger import DedupeLedger
from graphwatch.domains.notifications.services.intake_service import NotificationIntake
from graphwatch.domains.notifications.services.processing_service import ChangeProcessor
from graphwatch.domains.notifications.services.snapshot_store import SnapshotRepository
from graphwatch.domains.subscriptions.services.lifecycle_manager import RenewalPolicy, SubscriptionLifecycleManager
from graphwatch.domains.subscriptions.services.subscription_service import SubscriptionService
from graphwatch.domains.subscriptions.services.subscription_store import SubscriptionRepository
from graphwatch.graph.credentials import ClientCredentialProvider, StaticCredentialProvider
from graphwatch.graph.resource_fetcher import GraphEventFetcher
from graphwatch.graph.subscription_client import GraphSubscriptionClient
from graphwatch.platform.outbox.services import (
    ATTENDEE_RESPONSE_CHANGED,
    NOTIFICATION_ACCEPTED,
    SUBSCRIPTION_LAPSED,
    SUBSCRIPTION_REAUTHORIZATION_REQUESTED,
    EventBusAdapter,
    OutboxAlerter,
    OutboxNotifier,
)
from graphwatch.platform.worker.config import DispatchConfig
from graphwatch.platform.worker.dispatcher import OutboxRouter, dispatch_ready

logger = logging.getLogger(__name__)

EXTENSION_KEY = "graphwatch"


@dataclass
class Services:
    clock: ClockSource
    credentials: CredentialProvider
    fetcher: ResourceFetcher
    remote: RemoteSubscriptionAPI
    subscriptions: SubscriptionRepository
    snapshots: SnapshotRepository
    ledger: DedupeLedger
    intake: NotificationIntake
    processor: ChangeProcessor
    policy: RenewalPolicy
    lifecycle: SubscriptionLifecycleManager
    subscription_service: SubscriptionService
    dispatch_config: DispatchConfig
    router: OutboxRouter
    executor: Optional[ThreadPoolExecutor] = None

    def schedule(self, app: Flask, message_ids: Iterable[int]) -> None:
        """Hand freshly accepted work items to the in-process pool, if any."""
        ids = list(message_ids)
        if self.executor is None or not ids:
            return
        for message_id in ids:
            self.executor.submit(_run_work_item, app, self.router, self.dispatch_config, message_id)


def _run_work_item(app: Flask, router: OutboxRouter, config: DispatchConfig, message_id: int) -> None:
    with app.app_context():
        try:
            dispatch_ready(router, config, ids=[message_id])
        except Exception:
            # Item stays pending/retry; the worker reclaims it.
            logger.exception("In-process processing of work item %s failed", message_id)


def build_credentials(config, clock: ClockSource) -> CredentialProvider:
    if config.get("GRAPH_STATIC_TOKEN"):
        return StaticCredentialProvider(config["GRAPH_STATIC_TOKEN"])
    token_url = config["GRAPH_TOKEN_URL_TEMPLATE"].format(tenant_id=config.get("GRAPH_TENANT_ID", ""))
    return ClientCredentialProvider(
        token_url=token_url,
        client_id=config.get("GRAPH_CLIENT_ID", ""),
        client_secret=config.get("GRAPH_CLIENT_SECRET", ""),
        scope=config.get("GRAPH_SCOPE", "https://graph.microsoft.com/.default"),
        clock=clock,
        timeout=config.get("UPSTREAM_TIMEOUT_SECONDS", 30),
    )


def _public_url(config, path_key: str) -> str:
    return config["WEBHOOK_PUBLIC_URL"].rstrip("/") + config[path_key]


def build_services(
    app: Flask,
    clock: Optional[ClockSource] = None,
    fetcher: Optional[ResourceFetcher] = None,
    remote: Optional[RemoteSubscriptionAPI] = None,
    credentials: Optional[CredentialProvider] = None,
) -> Services:
    """Assemble collaborators from app config; any of them may be injected."""
    config = app.config
    clock = clock or SystemClock()
    credentials = credentials or build_credentials(config, clock)
    fetcher = fetcher or GraphEventFetcher(
        config["GRAPH_BASE_URL"],
        credentials,
        clock=clock,
        timeout=config.get("RESOURCE_FETCH_TIMEOUT_SECONDS", 15),
    )
    remote = remote or GraphSubscriptionClient(
        config["GRAPH_BASE_URL"],
        credentials,
        timeout=config.get("UPSTREAM_TIMEOUT_SECONDS", 30),
    )

    policy = RenewalPolicy.from_config(config)
    subscriptions = SubscriptionRepository(lease=policy.lease)
    snapshots = SnapshotRepository()
    ledger = DedupeLedger()
    alerter = OutboxAlerter()

    intake = NotificationIntake(
        subscriptions,
        ledger,
        clock,
        alerter,
        retention=timedelta(hours=config.get("DEDUPE_RETENTION_HOURS", 24)),
    )
    processor = ChangeProcessor(
        fetcher,
        snapshots,
        ledger,
        OutboxNotifier(),
        clock,
        cas_retries=config.get("SNAPSHOT_CAS_RETRIES", 3),
    )
    lifecycle = SubscriptionLifecycleManager(subscriptions, remote, clock, alerter, policy)
    subscription_service = SubscriptionService(
        subscriptions,
        remote,
        clock,
        policy,
        notification_url=_public_url(config, "WEBHOOK_CALLBACK_PATH"),
        lifecycle_url=_public_url(config, "WEBHOOK_LIFECYCLE_PATH"),
        default_change_types=config.get("SUBSCRIPTION_CHANGE_TYPES", "created,updated,deleted"),
    )

    bus_adapter = EventBusAdapter()
    router = OutboxRouter()
    router.register(NOTIFICATION_ACCEPTED, processor.handle_message, on_failed=processor.release_fingerprint)
    router.register(SUBSCRIPTION_REAUTHORIZATION_REQUESTED, lifecycle.handle_reauthorization)
    router.register(ATTENDEE_RESPONSE_CHANGED, bus_adapter.dispatch)
    router.register(SUBSCRIPTION_LAPSED, bus_adapter.dispatch)

    workers = int(config.get("INTAKE_WORKERS", 0) or 0)
    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="intake") if workers > 0 else None

    return Services(
        clock=clock,
        credentials=credentials,
        fetcher=fetcher,
        remote=remote,
        subscriptions=subscriptions,
        snapshots=snapshots,
        ledger=ledger,
        intake=intake,
        processor=processor,
        policy=policy,
        lifecycle=lifecycle,
        subscription_service=subscription_service,
        dispatch_config=DispatchConfig.from_config(config),
        router=router,
        executor=executor,
    )


def get_services(app: Optional[Flask] = None) -> Services:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


__all__ = ["EXTENSION_KEY", "Services", "build_credentials", "build_services", "get_services"]
