"""Notification domain controllers."""

from graphwatch.domains.notifications.controllers.webhook_api import webhook_api_bp

__all__ = ["webhook_api_bp"]
