"""Workflow definition registry."""

from __future__ import annotations

from typing import Dict, Iterator

from ..errors import DuplicateWorkflowType, RegistryFrozen, UnknownWorkflowType
from .models import Step, WorkflowDefinition, definition


class WorkflowRegistry:
    """Maps workflow type names to their definitions.

    The registry is filled during start-up and then frozen; lookups after
    that point need no locking because nothing mutates it.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._frozen = False

    def register(self, workflow: WorkflowDefinition) -> None:
        if self._frozen:
            raise RegistryFrozen(
                f"Cannot register {workflow.type}: registry is read-only"
            )
        if workflow.type in self._definitions:
            raise DuplicateWorkflowType(workflow.type)
        self._definitions[workflow.type] = workflow

    def lookup(self, workflow_type: str) -> WorkflowDefinition:
        try:
            return self._definitions[workflow_type]
        except KeyError:
            raise UnknownWorkflowType(workflow_type) from None

    def freeze(self) -> "WorkflowRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def types(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, workflow_type: object) -> bool:
        return workflow_type in self._definitions

    def __iter__(self) -> Iterator[WorkflowDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)


__all__ = [
    "Step",
    "WorkflowDefinition",
    "WorkflowRegistry",
    "definition",
]
