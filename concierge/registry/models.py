"""Workflow and step definition models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

if TYPE_CHECKING:
    from ..contracts import ValidationResult, WorkflowInstance


@runtime_checkable
class Step(Protocol):
    """One unit of a workflow definition.

    ``validate`` must not mutate the instance. ``execute`` returns the entries
    to merge into ``step_data``; it may call external services and raise on
    failure. ``prompt`` renders what the user is asked for at this step.
    """

    name: str

    async def validate(
        self, data: Mapping[str, Any], instance: "WorkflowInstance"
    ) -> "ValidationResult": ...

    async def execute(
        self, data: Mapping[str, Any], instance: "WorkflowInstance"
    ) -> Mapping[str, Any]: ...

    def prompt(self, instance: "WorkflowInstance") -> str: ...


def _default_completion(instance: "WorkflowInstance") -> str:
    return "All done."


@dataclass(frozen=True)
class WorkflowDefinition:
    """Static, ordered list of steps identified by ``type``."""

    type: str
    steps: Tuple[Step, ...]
    description: str = ""
    completion_prompt: Callable[["WorkflowInstance"], str] = field(
        default=_default_completion, compare=False
    )

    def __post_init__(self) -> None:
        if not self.type:
            raise ValueError("workflow type must be a non-empty string")
        steps = tuple(self.steps)
        if not steps:
            raise ValueError(f"workflow {self.type} must define at least one step")
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"workflow {self.type} has duplicate step names: {names}")
        object.__setattr__(self, "steps", steps)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def prompt_for(self, instance: "WorkflowInstance") -> str:
        """Prompt for the step ``instance`` is waiting on."""
        if instance.completed:
            return self.completion_prompt(instance)
        return self.steps[instance.current_step].prompt(instance)


def definition(
    workflow_type: str,
    steps: Sequence[Step],
    description: str = "",
    completion_prompt: Optional[Callable[["WorkflowInstance"], str]] = None,
) -> WorkflowDefinition:
    """Convenience constructor accepting any step sequence."""
    return WorkflowDefinition(
        type=workflow_type,
        steps=tuple(steps),
        description=description,
        completion_prompt=completion_prompt or _default_completion,
    )
