"""Error taxonomy shared by intake, processing and subscription lifecycle."""

from __future__ import annotations

from typing import Optional


class GraphwatchError(Exception):
    """Base exception for graphwatch operations."""

    pass


class AuthenticityFailure(GraphwatchError):
    """Notification names an unknown/inactive subscription or a wrong clientState."""

    def __init__(self, subscription_id: Optional[str], reason: str) -> None:
        super().__init__(f"{reason}: subscription={subscription_id!r}")
        self.subscription_id = subscription_id
        self.reason = reason


class MalformedRequest(GraphwatchError):
    """Inbound body is neither a validation request nor a notification batch."""

    pass


class TransientUpstream(GraphwatchError):
    """Retryable upstream failure (throttling, network, credentials)."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class Throttled(TransientUpstream):
    pass


class Unavailable(TransientUpstream):
    pass


class AuthUnavailable(TransientUpstream):
    """Credential provider could not supply a bearer token."""

    pass


class FatalUpstream(GraphwatchError):
    """Upstream refused the request outright; retrying will not help."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Rejected(FatalUpstream):
    pass


class NotFound(FatalUpstream):
    pass


class InternalStoreFailure(GraphwatchError):
    """Persistence unavailable; the current unit of work must be abandoned."""

    pass


class SnapshotConflict(GraphwatchError):
    """Compare-and-swap on a resource snapshot lost against a concurrent writer."""

    pass


__all__ = [
    "GraphwatchError",
    "AuthenticityFailure",
    "MalformedRequest",
    "TransientUpstream",
    "Throttled",
    "Unavailable",
    "AuthUnavailable",
    "FatalUpstream",
    "Rejected",
    "NotFound",
    "InternalStoreFailure",
    "SnapshotConflict",
]
