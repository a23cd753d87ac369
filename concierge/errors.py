"""Error taxonomy raised by the workflow core."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from .contracts import WorkflowInstance


class WorkflowError(Exception):
    """Base class for every error surfaced by the workflow core.

    ``retryable`` tells the caller whether re-issuing the same call (after
    correcting the input or reloading the instance) can succeed.
    """

    retryable = False
    kind = "workflow_error"

    def __init__(self, message: str, workflow_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.workflow_id = workflow_id

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for rendering to a user."""
        return {
            "error": self.kind,
            "message": self.message,
            "workflow_id": self.workflow_id,
            "retryable": self.retryable,
        }


class UnknownWorkflowType(WorkflowError):
    kind = "unknown_workflow_type"

    def __init__(self, workflow_type: str) -> None:
        super().__init__(f"Unknown workflow type: {workflow_type}")
        self.workflow_type = workflow_type


class DuplicateWorkflowType(WorkflowError):
    kind = "duplicate_workflow_type"

    def __init__(self, workflow_type: str) -> None:
        super().__init__(f"Workflow type already registered: {workflow_type}")
        self.workflow_type = workflow_type


class RegistryFrozen(WorkflowError):
    kind = "registry_frozen"


class WorkflowNotFound(WorkflowError):
    kind = "not_found"

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow {workflow_id} not found", workflow_id)


class TerminalState(WorkflowError):
    """The instance is completed or cancelled and accepts no further changes."""

    kind = "terminal_state"


class WorkflowPaused(WorkflowError):
    kind = "paused"


class NotPaused(WorkflowError):
    kind = "not_paused"


class ActiveWorkflowExists(WorkflowError):
    kind = "active_workflow_exists"


class InvariantViolation(WorkflowError):
    """Internal inconsistency; indicates a bug rather than a caller mistake."""

    kind = "invariant_violation"


class ConcurrentModification(WorkflowError):
    """Another mutation of the same instance won the race."""

    kind = "concurrent_modification"
    retryable = True


class StepError(WorkflowError):
    """Base for failures attributed to a specific step of an instance."""

    retryable = True

    def __init__(
        self,
        message: str,
        instance: "WorkflowInstance",
        step: str,
        suggestions: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(message, instance.id)
        self.instance = instance
        self.step = step
        self.step_index = instance.current_step
        self.suggestions = list(suggestions or [])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            step=self.step,
            step_index=self.step_index,
            suggestions=self.suggestions,
        )
        return data


class ValidationFailed(StepError):
    kind = "validation_failed"


class ExecutionFailed(StepError):
    kind = "execution_failed"

    def __init__(
        self,
        message: str,
        instance: "WorkflowInstance",
        step: str,
        timeout: bool = False,
        suggestions: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(message, instance, step, suggestions)
        self.timeout = timeout

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["timeout"] = self.timeout
        return data


class ServiceError(Exception):
    """Failure reported by an external domain service.

    ``suggestions`` lets a service hand back alternatives (other slots,
    other items) that the engine forwards to the caller.
    """

    def __init__(self, message: str, suggestions: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.suggestions = list(suggestions or [])
