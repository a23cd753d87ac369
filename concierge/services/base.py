"""Contracts for the external services that workflow steps call.

Implementations live outside the workflow core; failures are reported by
raising :class:`~concierge.errors.ServiceError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol

from .models import (
    ApprovalRequest,
    Booking,
    Mentor,
    Reservation,
    Resource,
    Submission,
)


class MentorDirectory(Protocol):
    async def search(
        self, expertise: Optional[str] = None, name: Optional[str] = None
    ) -> List[Mentor]:
        """Mentors matching ``expertise`` and/or ``name``."""

    async def get(self, mentor_id: str) -> Optional[Mentor]:
        """Current record of a mentor, including live availability."""

    async def is_slot_open(self, mentor_id: str, slot: datetime) -> bool:
        """Whether ``slot`` is still free on the mentor's calendar."""


class BookingService(Protocol):
    async def book(
        self, owner_id: str, mentor_id: str, slot: datetime, topic: Optional[str] = None
    ) -> Booking:
        """Book ``slot`` with a mentor."""


class SubmissionTracker(Protocol):
    async def find(self, owner_id: str, query: Optional[str] = None) -> List[Submission]:
        """Submissions of an owner, optionally filtered by title."""

    async def get(self, submission_id: str) -> Optional[Submission]:
        """Submission with its status timeline."""

    async def subscribe(self, owner_id: str, submission_id: str) -> None:
        """Register the owner for status change updates."""


class InventoryService(Protocol):
    async def search(
        self, query: Optional[str] = None, category: Optional[str] = None
    ) -> List[Resource]:
        """Resources matching the query and category."""

    async def get(self, resource_id: str) -> Optional[Resource]:
        """Current stock of a resource."""

    async def reserve(self, owner_id: str, resource_id: str, quantity: int) -> Reservation:
        """Reserve ``quantity`` units of a resource."""


class ApprovalService(Protocol):
    async def list_requests(
        self, owner_id: str, status: Optional[str] = None
    ) -> List[ApprovalRequest]:
        """Approval requests raised by an owner."""

    async def get(self, request_id: str) -> Optional[ApprovalRequest]:
        """Approval request with its approver chain."""


class NotificationService(Protocol):
    async def notify(self, recipient: str, message: str) -> None:
        """Deliver a notification; callers never wait on the outcome."""


@dataclass
class ServiceBundle:
    """The collaborators the built-in workflows depend on."""

    mentors: MentorDirectory
    bookings: BookingService
    submissions: SubmissionTracker
    inventory: InventoryService
    approvals: ApprovalService
    notifications: NotificationService
