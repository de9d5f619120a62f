"""Subscription domain models."""

from graphwatch.domains.subscriptions.models.subscription import GraphSubscription

__all__ = ["GraphSubscription"]
