"""Approval status: list requests, inspect one, optionally nudge the approver."""

from __future__ import annotations

from typing import Any, Mapping

from ..contracts import ValidationResult, WorkflowInstance
from ..errors import ServiceError
from ..registry import WorkflowDefinition, definition
from ..services import ApprovalService, NotificationService, ServiceBundle
from ..utils.tasks import fire_and_forget
from ._common import choices, describe, find_item, parse_answer

WORKFLOW_TYPE = "check_approval"

STATUSES = ("pending", "approved", "rejected")


class LookupApprovals:
    name = "lookup"

    def __init__(self, approvals: ApprovalService) -> None:
        self._approvals = approvals

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        status = data.get("status")
        if status is not None and status not in STATUSES:
            return ValidationResult.invalid(
                f"Unknown status {status!r}.", suggestions=list(STATUSES)
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        requests = await self._approvals.list_requests(
            instance.owner_id, status=data.get("status")
        )
        return {
            "approval_requests": [
                {"id": r.id, "title": r.title, "status": r.status} for r in requests
            ]
        }

    def prompt(self, instance: WorkflowInstance) -> str:
        return "Do you want to see pending, approved or rejected requests, or all of them?"


class ApprovalDetail:
    name = "detail"

    def __init__(self, approvals: ApprovalService) -> None:
        self._approvals = approvals

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        requests = instance.step_data.get("approval_requests", [])
        if not requests:
            return ValidationResult.invalid("You have no matching approval requests.")
        if find_item(requests, data.get("request_id")) is None:
            return ValidationResult.invalid(
                f"{data.get('request_id')!r} is not one of your requests.",
                suggestions=choices(requests, label="title"),
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        request = await self._approvals.get(data["request_id"])
        if request is None:
            raise ServiceError(f"Approval request {data['request_id']} could not be loaded")
        return {"approval": request.model_dump(mode="json")}

    def prompt(self, instance: WorkflowInstance) -> str:
        requests = instance.step_data.get("approval_requests", [])
        if not requests:
            return "I couldn't find any approval requests."
        return f"Your requests: {describe(requests, label='title')}. Which one?"


class SendReminder:
    name = "remind"

    def __init__(self, notifications: NotificationService) -> None:
        self._notifications = notifications

    async def validate(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> ValidationResult:
        answer = parse_answer(data.get("send_reminder"))
        if answer is None:
            return ValidationResult.invalid("Answer yes or no.")
        approval = instance.step_data.get("approval", {})
        if answer and not approval.get("pending_approver"):
            return ValidationResult.invalid(
                f"{approval.get('title')} is {approval.get('status')}; nobody needs a reminder."
            )
        return ValidationResult.ok()

    async def execute(
        self, data: Mapping[str, Any], instance: WorkflowInstance
    ) -> Mapping[str, Any]:
        wanted = parse_answer(data["send_reminder"])
        if wanted:
            approval = instance.step_data["approval"]
            fire_and_forget(
                self._notifications.notify(
                    approval["pending_approver"],
                    f"Reminder: '{approval['title']}' is waiting for your approval.",
                ),
                "approval reminder",
            )
        return {"reminder_requested": wanted}

    def prompt(self, instance: WorkflowInstance) -> str:
        approval = instance.step_data.get("approval", {})
        if approval.get("pending_approver"):
            return (
                f"{approval.get('title')} is waiting on {approval['pending_approver']}. "
                "Shall I send them a reminder?"
            )
        return f"{approval.get('title')} is {approval.get('status')}. Reply no to finish."


def _completed(instance: WorkflowInstance) -> str:
    approval = instance.step_data["approval"]
    if instance.step_data.get("reminder_requested"):
        return f"Reminder sent to {approval['pending_approver']}."
    return f"{approval['title']}: {approval['status']}."


def build_definition(services: ServiceBundle) -> WorkflowDefinition:
    return definition(
        WORKFLOW_TYPE,
        [
            LookupApprovals(services.approvals),
            ApprovalDetail(services.approvals),
            SendReminder(services.notifications),
        ],
        description="Check the status of an approval request",
        completion_prompt=_completed,
    )
