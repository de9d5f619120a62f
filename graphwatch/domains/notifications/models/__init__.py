"""Notification domain models."""

from graphwatch.domains.notifications.models.fingerprint import NotificationFingerprint
from graphwatch.domains.notifications.models.snapshot import ResourceSnapshotRow

__all__ = ["NotificationFingerprint", "ResourceSnapshotRow"]
