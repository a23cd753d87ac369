"""External service contracts used by the built-in workflows."""

from .base import (
    ApprovalService,
    BookingService,
    InventoryService,
    MentorDirectory,
    NotificationService,
    ServiceBundle,
    SubmissionTracker,
)
from .inmemory import demo_services
from .models import (
    ApprovalRequest,
    Booking,
    Mentor,
    Reservation,
    Resource,
    Submission,
    SubmissionEvent,
)

__all__ = [
    "ApprovalRequest",
    "ApprovalService",
    "Booking",
    "BookingService",
    "InventoryService",
    "Mentor",
    "MentorDirectory",
    "NotificationService",
    "Reservation",
    "Resource",
    "ServiceBundle",
    "Submission",
    "SubmissionEvent",
    "SubmissionTracker",
    "demo_services",
]
