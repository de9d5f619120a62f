"""Notification domain services."""

from graphwatch.domains.notifications.services.change_detector import diff
from graphwatch.domains.notifications.services.handshake import validation_response
from graphwatch.domains.notifications.services.intake_service import IntakeResult, NotificationIntake
from graphwatch.domains.notifications.services.processing_service import ChangeProcessor

__all__ = [
    "diff",
    "validation_response",
    "IntakeResult",
    "NotificationIntake",
    "ChangeProcessor",
]
