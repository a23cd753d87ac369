"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..contracts import StepRecord, WorkflowInstance
from ..errors import ConcurrentModification, WorkflowNotFound
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Instances are copied on the way in
    and out so callers never hold a reference to stored state.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowInstance] = {}
        self._steps: Dict[str, List[StepRecord]] = {}
        self._step_id = 0

    # ------------------------------------------------------------------
    async def create_workflow(self, instance: WorkflowInstance) -> None:
        if instance.id in self._workflows:
            raise ValueError(f"Workflow {instance.id} already exists")
        self._workflows[instance.id] = instance.model_copy(deep=True)

    async def save_workflow(
        self, instance: WorkflowInstance, expected_version: int
    ) -> None:
        stored = self._workflows.get(instance.id)
        if stored is None:
            raise WorkflowNotFound(instance.id)
        if stored.version != expected_version:
            raise ConcurrentModification(
                f"Workflow {instance.id} changed: expected version "
                f"{expected_version}, found {stored.version}",
                instance.id,
            )
        self._workflows[instance.id] = instance.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def find_active(self, owner_id: str) -> WorkflowInstance | None:
        candidates = [
            wf
            for wf in self._workflows.values()
            if wf.owner_id == owner_id and wf.is_active
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda wf: (not wf.paused, wf.updated_at))
        return latest.model_copy(deep=True)

    async def list_workflows(
        self, owner_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if owner_id is None or wf.owner_id == owner_id
        ]

    async def record_step(self, record: StepRecord) -> None:
        self._step_id += 1
        stored = record.model_copy(update={"id": self._step_id}, deep=True)
        self._steps.setdefault(record.workflow_id, []).append(stored)

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        return [r.model_copy(deep=True) for r in self._steps.get(workflow_id, [])]
