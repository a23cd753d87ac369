"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import StepRecord, WorkflowInstance


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends.

    ``save_workflow`` is an optimistic compare-and-swap: it only succeeds when
    the stored version still equals ``expected_version`` and raises
    :class:`~concierge.errors.ConcurrentModification` otherwise.
    """

    async def create_workflow(self, instance: WorkflowInstance) -> None:
        """Persist a newly created instance."""

    async def save_workflow(
        self, instance: WorkflowInstance, expected_version: int
    ) -> None:
        """Replace the stored instance if its version is ``expected_version``."""

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        """Retrieve the workflow instance by id."""

    async def find_active(self, owner_id: str) -> WorkflowInstance | None:
        """The running instance of ``owner_id``, else its latest paused one."""

    async def list_workflows(
        self, owner_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        """Return persisted workflows, optionally for a single owner."""

    async def record_step(self, record: StepRecord) -> None:
        """Append an attempt to the step history."""

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        """Step history for ``workflow_id`` in insertion order."""
