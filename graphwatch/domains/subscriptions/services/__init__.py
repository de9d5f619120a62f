"""Subscription domain services."""

from graphwatch.domains.subscriptions.services.lifecycle_manager import (
    RenewalPolicy,
    RenewalReport,
    SubscriptionLifecycleManager,
)
from graphwatch.domains.subscriptions.services.subscription_service import SubscriptionService
from graphwatch.domains.subscriptions.services.subscription_store import SubscriptionRepository

__all__ = [
    "RenewalPolicy",
    "RenewalReport",
    "SubscriptionLifecycleManager",
    "SubscriptionRepository",
    "SubscriptionService",
]
