"""Subscription domain controllers."""

from graphwatch.domains.subscriptions.controllers.subscription_api import subscription_api_bp

__all__ = ["subscription_api_bp"]
