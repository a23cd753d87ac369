"""Routes incoming concierge messages to the workflow engine."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Protocol

from pydantic import BaseModel, Field

from .contracts import WorkflowInstance
from .engine import WorkflowEngine
from .errors import StepError, WorkflowError
from .utils.retry import retry_on_conflict

logger = logging.getLogger(__name__)

INTENT_WORKFLOWS: Dict[str, str] = {
    "mentor_booking": "book_mentor",
    "submission_status": "track_submission",
    "resource_search": "find_resource",
    "approval_status": "check_approval",
}

CONTROL_INTENTS = ("pause", "resume", "cancel")


class Intent(BaseModel):
    type: str
    confidence: float = Field(ge=0.0, le=1.0)
    entities: Dict[str, Any] = Field(default_factory=dict)


class IntentClassifier(Protocol):
    async def classify(self, query: str, context: Mapping[str, Any]) -> Intent:
        """Classify ``query`` into an intent with extracted entities."""


class ConciergeReply(BaseModel):
    """What the concierge says back, plus the workflow state behind it."""

    message: str
    workflow: Optional[WorkflowInstance] = None
    error: Optional[Dict[str, Any]] = None
    suggestions: List[Any] = Field(default_factory=list)


class ConciergeRouter:
    """Decides whether a message starts, advances or controls a workflow.

    An owner with a running workflow has every message routed to it as an
    ``advance``; otherwise the classified intent selects a workflow to start.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        classifier: IntentClassifier,
        min_confidence: float = 0.5,
    ) -> None:
        self._engine = engine
        self._classifier = classifier
        self.min_confidence = min_confidence

    async def handle(
        self, owner_id: str, query: str, context: Optional[Mapping[str, Any]] = None
    ) -> ConciergeReply:
        active = await self._engine.get_active(owner_id)
        ctx = dict(context or {})
        ctx["active_workflow"] = active.type if active else None
        intent = await self._classifier.classify(query, ctx)
        logger.debug(
            f"Owner {owner_id} intent {intent.type} ({intent.confidence:.2f}), "
            f"active workflow {active.id if active else None}"
        )

        try:
            if active is not None and intent.type in CONTROL_INTENTS:
                return await self._control(intent.type, active)
            if active is not None and not active.paused:
                instance = await self._engine.advance(active.id, intent.entities)
                return self._reply(instance)
            workflow_type = INTENT_WORKFLOWS.get(intent.type)
            if workflow_type and intent.confidence >= self.min_confidence:
                instance = await self._engine.start(
                    workflow_type, owner_id, intent.entities
                )
                return self._reply(instance)
        except StepError as exc:
            return ConciergeReply(
                message=self._render_step_error(exc),
                workflow=exc.instance,
                error=exc.to_dict(),
                suggestions=exc.suggestions,
            )
        except WorkflowError as exc:
            return ConciergeReply(message=exc.message, error=exc.to_dict())

        if active is not None and active.paused:
            return ConciergeReply(
                message=f"Your {active.type} request is paused. Say resume to continue.",
                workflow=active,
            )
        return ConciergeReply(
            message="I can book mentors, track submissions, find resources "
            "and check approvals. What do you need?"
        )

    async def _control(self, action: str, active: WorkflowInstance) -> ConciergeReply:
        # pause, resume and cancel reload the instance on every attempt
        if action == "pause":
            instance = await retry_on_conflict(lambda: self._engine.pause(active.id))
            return ConciergeReply(
                message="Paused. Say resume whenever you want to pick this up again.",
                workflow=instance,
            )
        if action == "resume":
            instance = await retry_on_conflict(lambda: self._engine.resume(active.id))
            return self._reply(instance)
        instance = await retry_on_conflict(lambda: self._engine.cancel(active.id))
        return ConciergeReply(message="Cancelled.", workflow=instance)

    @staticmethod
    def _reply(instance: WorkflowInstance) -> ConciergeReply:
        return ConciergeReply(message=instance.prompt or "", workflow=instance)

    @staticmethod
    def _render_step_error(exc: StepError) -> str:
        message = f"{exc.message} (step {exc.step_index + 1}: {exc.step})"
        if getattr(exc, "timeout", False):
            message += " The service took too long; please try again."
        if exc.suggestions:
            rendered = ", ".join(
                str(s.get("name") or s.get("title") or s.get("id")) if isinstance(s, dict) else str(s)
                for s in exc.suggestions
            )
            message += f" Options: {rendered}."
        return message


class KeywordIntentClassifier:
    """Keyword matcher with ``key=value`` entity extraction, for demos and tests."""

    KEYWORDS: Dict[str, tuple[str, ...]] = {
        "mentor_booking": ("mentor", "book"),
        "submission_status": ("submission", "track"),
        "resource_search": ("resource", "equipment", "reserve", "room"),
        "approval_status": ("approval", "approve"),
        "pause": ("pause", "later"),
        "resume": ("resume", "continue"),
        "cancel": ("cancel", "stop"),
    }

    _ENTITY = re.compile(r"(\w+)=(\"[^\"]*\"|\S+)")

    async def classify(self, query: str, context: Mapping[str, Any]) -> Intent:
        entities = {key: self._coerce(value) for key, value in self._ENTITY.findall(query)}
        words = set(re.findall(r"[a-z]+", self._ENTITY.sub(" ", query).lower()))
        best, hits = "unknown", 0
        for intent, keywords in self.KEYWORDS.items():
            count = sum(1 for k in keywords if k in words)
            if count > hits:
                best, hits = intent, count
        confidence = min(1.0, 0.5 + 0.25 * hits) if hits else 0.0
        return Intent(type=best, confidence=confidence, entities=entities)

    @staticmethod
    def _coerce(value: str) -> Any:
        value = value.strip('"')
        if value.lower() in ("true", "false"):
            return value.lower() == "true"
        if value.isdigit():
            return int(value)
        return value
