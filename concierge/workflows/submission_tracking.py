"""Submission tracking: look up, pick one, optionally subscribe to updates."""

from __future__ import annotations

from typing import Any, Mapping

from ..contracts import ValidationResult, WorkflowInstance
from ..errors import ServiceError
from ..registry import WorkflowDefinition, definition
from ..services import ServiceBundle, SubmissionTracker
from ._common import choices, describe, find_item, parse_answer

WORKFLOW_TYPE = "track_submission"


class LookupSubmissions:
    name = "lookup"

    def __init__(self, tracker: SubmissionTracker) -> None:
        self._tracker = tracker

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        found = await self._tracker.find(instance.owner_id, query=data.get("query"))
        return {
            "submissions": [
                {"id": s.id, "title": s.title, "status": s.status} for s in found
            ]
        }

    def prompt(self, instance: WorkflowInstance) -> str:
        return "Which submission do you want to check? Part of its title is enough."


class SelectSubmission:
    name = "select"

    def __init__(self, tracker: SubmissionTracker) -> None:
        self._tracker = tracker

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        found = instance.step_data.get("submissions", [])
        if not found:
            return ValidationResult.invalid(
                "You have no submissions matching that search; cancel and try again."
            )
        if find_item(found, data.get("submission_id")) is None:
            return ValidationResult.invalid(
                f"{data.get('submission_id')!r} is not one of your submissions.",
                suggestions=choices(found, label="title"),
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        submission = await self._tracker.get(data["submission_id"])
        if submission is None:
            raise ServiceError(f"Submission {data['submission_id']} could not be loaded")
        return {"submission": submission.model_dump(mode="json")}

    def prompt(self, instance: WorkflowInstance) -> str:
        found = instance.step_data.get("submissions", [])
        if not found:
            return "I couldn't find any matching submissions."
        return f"I found: {describe(found, label='title')}. Which one?"


class SubscribeToUpdates:
    name = "subscribe"

    def __init__(self, tracker: SubmissionTracker) -> None:
        self._tracker = tracker

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        if parse_answer(data.get("subscribe")) is None:
            return ValidationResult.invalid("Answer yes or no.")
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        wanted = parse_answer(data["subscribe"])
        if wanted:
            await self._tracker.subscribe(
                instance.owner_id, instance.step_data["submission"]["id"]
            )
        return {"subscribed": wanted}

    def prompt(self, instance: WorkflowInstance) -> str:
        submission = instance.step_data.get("submission", {})
        return (
            f"{submission.get('title')} is currently {submission.get('status')}. "
            "Do you want updates when it changes?"
        )


def _completed(instance: WorkflowInstance) -> str:
    title = instance.step_data["submission"]["title"]
    if instance.step_data.get("subscribed"):
        return f"I'll let you know when {title} changes status."
    return f"OK, no updates for {title}."


def build_definition(services: ServiceBundle) -> WorkflowDefinition:
    return definition(
        WORKFLOW_TYPE,
        [
            LookupSubmissions(services.submissions),
            SelectSubmission(services.submissions),
            SubscribeToUpdates(services.submissions),
        ],
        description="Check where a submission stands",
        completion_prompt=_completed,
    )
