"""Core data contracts for concierge workflows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepFailure(BaseModel):
    """Last validation or execution error recorded on an instance."""

    step: str
    step_index: int
    kind: Literal["validation", "execution"]
    message: str
    suggestions: List[Any] = Field(default_factory=list)
    timeout: bool = False


class ValidationResult(BaseModel):
    """Outcome of a step's ``validate`` call."""

    valid: bool
    reason: Optional[str] = None
    suggestions: List[Any] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def invalid(
        cls, reason: str, suggestions: Optional[List[Any]] = None
    ) -> "ValidationResult":
        return cls(valid=False, reason=reason, suggestions=suggestions or [])


class WorkflowInstance(BaseModel):
    """A single run of a multi-step guided workflow for one owner."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    owner_id: str
    current_step: int = 0
    total_steps: int
    step_data: Dict[str, Any] = Field(default_factory=dict)
    completed: bool = False
    paused: bool = False
    cancelled: bool = False
    last_error: Optional[StepFailure] = None
    prompt: Optional[str] = None
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.completed or self.cancelled

    @property
    def is_active(self) -> bool:
        """``True`` while the instance can still receive input."""
        return not self.is_terminal

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.completed:
            return "completed"
        if self.paused:
            return "paused"
        return "running"

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "WorkflowInstance":
        return cls.model_validate_json(data)


class StepRecord(BaseModel):
    """Audit record of one attempt at one step."""

    id: Optional[int] = None
    workflow_id: str
    step_name: str
    step_index: int
    status: Literal["completed", "invalid", "failed", "timeout", "discarded"]
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
