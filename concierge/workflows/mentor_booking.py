"""Mentor booking: search, select, schedule, confirm."""

from __future__ import annotations

from typing import Any, Mapping

from ..contracts import ValidationResult, WorkflowInstance
from ..errors import ServiceError
from ..registry import WorkflowDefinition, definition
from ..services import BookingService, MentorDirectory, NotificationService, ServiceBundle
from ..utils.tasks import fire_and_forget
from ._common import choices, describe, find_item, parse_answer, parse_slot

WORKFLOW_TYPE = "book_mentor"


class SearchMentors:
    name = "search"

    def __init__(self, directory: MentorDirectory) -> None:
        self._directory = directory

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        if not (data.get("expertise") or data.get("name")):
            return ValidationResult.invalid(
                "Tell me an area of expertise or a mentor's name to search for."
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        mentors = await self._directory.search(
            expertise=data.get("expertise"), name=data.get("name")
        )
        return {
            "search_criteria": {
                "expertise": data.get("expertise"),
                "name": data.get("name"),
            },
            "available_mentors": [
                m.model_dump(mode="json") for m in mentors if m.available
            ],
        }

    def prompt(self, instance: WorkflowInstance) -> str:
        return "Which area of expertise, or which mentor, are you looking for?"


class SelectMentor:
    """Pick one of the mentors found by the search.

    The directory is consulted again because availability may have changed
    since the search ran; an unavailable pick is answered with alternatives.
    """

    name = "select"

    def __init__(self, directory: MentorDirectory) -> None:
        self._directory = directory

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        candidates = instance.step_data.get("available_mentors", [])
        if not candidates:
            return ValidationResult.invalid(
                "No available mentors matched your search; cancel and search again."
            )
        mentor_id = data.get("mentor_id")
        chosen = find_item(candidates, mentor_id)
        if chosen is None:
            return ValidationResult.invalid(
                f"{mentor_id!r} is not one of the mentors I found.",
                suggestions=choices(candidates),
            )

        live = await self._directory.get(mentor_id)
        if live is None or not live.available:
            alternatives = []
            for candidate in candidates:
                if candidate["id"] == mentor_id:
                    continue
                other = await self._directory.get(candidate["id"])
                if other is not None and other.available:
                    alternatives.append(candidate)
            return ValidationResult.invalid(
                f"{chosen['name']} is no longer available.",
                suggestions=choices(alternatives),
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        mentor = await self._directory.get(data["mentor_id"])
        if mentor is None:
            raise ServiceError(f"Mentor {data['mentor_id']} could not be loaded")
        return {"selected_mentor": mentor.model_dump(mode="json")}

    def prompt(self, instance: WorkflowInstance) -> str:
        candidates = instance.step_data.get("available_mentors", [])
        if not candidates:
            return "I couldn't find any available mentors. Try a different search."
        return f"I found {len(candidates)} mentor(s): {describe(candidates)}. Which one would you like?"


class ScheduleSession:
    name = "schedule"

    def __init__(self, directory: MentorDirectory) -> None:
        self._directory = directory

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        if parse_slot(data.get("slot")) is None:
            mentor = instance.step_data.get("selected_mentor", {})
            return ValidationResult.invalid(
                "Give the date and time as ISO-8601, e.g. 2030-01-14T10:00:00+00:00.",
                suggestions=mentor.get("open_slots", []),
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        slot = parse_slot(data["slot"])
        mentor_id = instance.step_data["selected_mentor"]["id"]
        if not await self._directory.is_slot_open(mentor_id, slot):
            live = await self._directory.get(mentor_id)
            open_slots = [s.isoformat() for s in live.open_slots] if live else []
            raise ServiceError(
                f"{slot.isoformat()} is not available with this mentor",
                suggestions=open_slots,
            )
        result: dict[str, Any] = {"slot": slot.isoformat()}
        if data.get("topic"):
            result["topic"] = data["topic"]
        return result

    def prompt(self, instance: WorkflowInstance) -> str:
        mentor = instance.step_data.get("selected_mentor", {})
        slots = ", ".join(mentor.get("open_slots", [])) or "none listed"
        return f"When would you like to meet {mentor.get('name')}? Open slots: {slots}."


class ConfirmBooking:
    name = "confirm"

    def __init__(
        self, bookings: BookingService, notifications: NotificationService
    ) -> None:
        self._bookings = bookings
        self._notifications = notifications

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        if parse_answer(data.get("confirm")) is not True:
            return ValidationResult.invalid(
                "Reply with confirm to book the session, or cancel the workflow."
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        mentor = instance.step_data["selected_mentor"]
        booking = await self._bookings.book(
            instance.owner_id,
            mentor["id"],
            parse_slot(instance.step_data["slot"]),
            topic=instance.step_data.get("topic"),
        )
        fire_and_forget(
            self._notifications.notify(
                instance.owner_id,
                f"Your session with {mentor['name']} on {booking.slot.isoformat()} is booked.",
            ),
            "booking confirmation",
        )
        return {"booking": booking.model_dump(mode="json")}

    def prompt(self, instance: WorkflowInstance) -> str:
        mentor = instance.step_data.get("selected_mentor", {})
        return (
            f"Book {mentor.get('name')} on {instance.step_data.get('slot')}? "
            "Reply confirm to finish."
        )


def _completed(instance: WorkflowInstance) -> str:
    booking = instance.step_data["booking"]
    mentor = instance.step_data["selected_mentor"]
    return f"Your session with {mentor['name']} is booked for {booking['slot']} (booking {booking['id']})."


def build_definition(services: ServiceBundle) -> WorkflowDefinition:
    return definition(
        WORKFLOW_TYPE,
        [
            SearchMentors(services.mentors),
            SelectMentor(services.mentors),
            ScheduleSession(services.mentors),
            ConfirmBooking(services.bookings, services.notifications),
        ],
        description="Find a mentor and book a session",
        completion_prompt=_completed,
    )
