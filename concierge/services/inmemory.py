"""In-memory service implementations for tests, the CLI and demos."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..errors import ServiceError
from .base import ServiceBundle
from .models import (
    ApprovalRequest,
    Booking,
    Mentor,
    Reservation,
    Resource,
    Submission,
    SubmissionEvent,
)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class _Simulated:
    """Latency and failure injection shared by the fake services."""

    def __init__(self, latency: float = 0.0, fail_next: int = 0) -> None:
        self.latency = latency
        self.fail_next = fail_next

    async def _call(self, operation: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise ServiceError(f"{operation} is temporarily unavailable")


class InMemoryMentorDirectory(_Simulated):
    def __init__(self, mentors: Optional[List[Mentor]] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._mentors: Dict[str, Mentor] = {m.id: m for m in mentors or []}

    def add(self, mentor: Mentor) -> None:
        self._mentors[mentor.id] = mentor

    def set_available(self, mentor_id: str, available: bool) -> None:
        self._mentors[mentor_id].available = available

    def take_slot(self, mentor_id: str, slot: datetime) -> None:
        mentor = self._mentors[mentor_id]
        mentor.open_slots = [s for s in mentor.open_slots if s != slot]

    async def search(
        self, expertise: Optional[str] = None, name: Optional[str] = None
    ) -> List[Mentor]:
        await self._call("Mentor directory")
        results = []
        for mentor in self._mentors.values():
            if expertise and expertise.lower() not in (e.lower() for e in mentor.expertise):
                continue
            if name and name.lower() not in mentor.name.lower():
                continue
            results.append(mentor.model_copy(deep=True))
        return results

    async def get(self, mentor_id: str) -> Optional[Mentor]:
        await self._call("Mentor directory")
        mentor = self._mentors.get(mentor_id)
        return mentor.model_copy(deep=True) if mentor else None

    async def is_slot_open(self, mentor_id: str, slot: datetime) -> bool:
        await self._call("Mentor calendar")
        mentor = self._mentors.get(mentor_id)
        return bool(mentor and mentor.available and slot in mentor.open_slots)


class InMemoryBookingService(_Simulated):
    def __init__(self, directory: InMemoryMentorDirectory, **kwargs) -> None:
        super().__init__(**kwargs)
        self._directory = directory
        self.bookings: List[Booking] = []

    async def book(
        self, owner_id: str, mentor_id: str, slot: datetime, topic: Optional[str] = None
    ) -> Booking:
        await self._call("Booking service")
        if not await self._directory.is_slot_open(mentor_id, slot):
            raise ServiceError(f"Slot {slot.isoformat()} is no longer available")
        self._directory.take_slot(mentor_id, slot)
        booking = Booking(
            id=_new_id("bk"), mentor_id=mentor_id, owner_id=owner_id, slot=slot, topic=topic
        )
        self.bookings.append(booking)
        return booking


class InMemorySubmissionTracker(_Simulated):
    def __init__(self, submissions: Optional[List[Submission]] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._submissions: Dict[str, Submission] = {s.id: s for s in submissions or []}
        self.subscriptions: List[tuple[str, str]] = []

    async def find(self, owner_id: str, query: Optional[str] = None) -> List[Submission]:
        await self._call("Submission tracker")
        return [
            s.model_copy(deep=True)
            for s in self._submissions.values()
            if s.owner_id == owner_id
            and (not query or query.lower() in s.title.lower())
        ]

    async def get(self, submission_id: str) -> Optional[Submission]:
        await self._call("Submission tracker")
        submission = self._submissions.get(submission_id)
        return submission.model_copy(deep=True) if submission else None

    async def subscribe(self, owner_id: str, submission_id: str) -> None:
        await self._call("Submission tracker")
        self.subscriptions.append((owner_id, submission_id))


class InMemoryInventoryService(_Simulated):
    def __init__(self, resources: Optional[List[Resource]] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._resources: Dict[str, Resource] = {r.id: r for r in resources or []}
        self.reservations: List[Reservation] = []

    def set_stock(self, resource_id: str, quantity: int) -> None:
        self._resources[resource_id].quantity_available = quantity

    async def search(
        self, query: Optional[str] = None, category: Optional[str] = None
    ) -> List[Resource]:
        await self._call("Inventory")
        return [
            r.model_copy(deep=True)
            for r in self._resources.values()
            if (not query or query.lower() in r.name.lower())
            and (not category or category.lower() == r.category.lower())
        ]

    async def get(self, resource_id: str) -> Optional[Resource]:
        await self._call("Inventory")
        resource = self._resources.get(resource_id)
        return resource.model_copy(deep=True) if resource else None

    async def reserve(self, owner_id: str, resource_id: str, quantity: int) -> Reservation:
        await self._call("Inventory")
        resource = self._resources.get(resource_id)
        if resource is None:
            raise ServiceError(f"Resource {resource_id} does not exist")
        if resource.quantity_available < quantity:
            raise ServiceError(
                f"Only {resource.quantity_available} of {resource.name} left",
                suggestions=[resource.quantity_available],
            )
        resource.quantity_available -= quantity
        reservation = Reservation(
            id=_new_id("rsv"), resource_id=resource_id, owner_id=owner_id, quantity=quantity
        )
        self.reservations.append(reservation)
        return reservation


class InMemoryApprovalService(_Simulated):
    def __init__(self, requests: Optional[List[ApprovalRequest]] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._requests: Dict[str, ApprovalRequest] = {r.id: r for r in requests or []}

    async def list_requests(
        self, owner_id: str, status: Optional[str] = None
    ) -> List[ApprovalRequest]:
        await self._call("Approvals")
        return [
            r.model_copy(deep=True)
            for r in self._requests.values()
            if r.owner_id == owner_id and (not status or r.status == status)
        ]

    async def get(self, request_id: str) -> Optional[ApprovalRequest]:
        await self._call("Approvals")
        request = self._requests.get(request_id)
        return request.model_copy(deep=True) if request else None


class InMemoryNotificationService(_Simulated):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.sent: List[tuple[str, str]] = []

    async def notify(self, recipient: str, message: str) -> None:
        await self._call("Notifications")
        self.sent.append((recipient, message))


def _slot(day: int, hour: int) -> datetime:
    return datetime(2030, 1, day, hour, 0, tzinfo=timezone.utc)


def demo_services() -> ServiceBundle:
    """Services seeded with a small campus data set."""
    directory = InMemoryMentorDirectory(
        [
            Mentor(
                id="m-ada",
                name="Ada Okafor",
                expertise=["IoT", "Embedded"],
                open_slots=[_slot(14, 10), _slot(15, 14)],
            ),
            Mentor(
                id="m-lin",
                name="Lin Chen",
                expertise=["IoT", "Machine Learning"],
                open_slots=[_slot(16, 9)],
            ),
            Mentor(
                id="m-raj",
                name="Raj Patel",
                expertise=["Web", "Cloud"],
                open_slots=[_slot(14, 15)],
            ),
        ]
    )
    submissions = InMemorySubmissionTracker(
        [
            Submission(
                id="s-100",
                owner_id="u1",
                title="Smart Greenhouse Proposal",
                status="under_review",
                timeline=[
                    SubmissionEvent(status="submitted", at=_slot(2, 9)),
                    SubmissionEvent(status="under_review", at=_slot(5, 11)),
                ],
            ),
            Submission(
                id="s-101",
                owner_id="u1",
                title="Campus Energy Dashboard",
                status="submitted",
                timeline=[SubmissionEvent(status="submitted", at=_slot(8, 16))],
            ),
        ]
    )
    inventory = InMemoryInventoryService(
        [
            Resource(id="r-pi", name="Raspberry Pi 4", category="hardware", location="Lab B", quantity_available=5),
            Resource(id="r-scope", name="Oscilloscope", category="hardware", location="Lab A", quantity_available=1),
            Resource(id="r-room", name="Meeting Room 3", category="space", location="Block C", quantity_available=1),
        ]
    )
    approvals = InMemoryApprovalService(
        [
            ApprovalRequest(
                id="a-1",
                owner_id="u1",
                title="Lab access after hours",
                approvers=["dr.mensah", "facilities"],
                pending_approver="facilities",
            ),
            ApprovalRequest(
                id="a-2",
                owner_id="u1",
                title="Equipment purchase",
                status="approved",
                approvers=["dr.mensah"],
            ),
        ]
    )
    return ServiceBundle(
        mentors=directory,
        bookings=InMemoryBookingService(directory),
        submissions=submissions,
        inventory=inventory,
        approvals=approvals,
        notifications=InMemoryNotificationService(),
    )
