"""Workflow engine: advances workflow instances one step at a time."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Literal, Mapping, Optional, Set

from .cache import ActiveWorkflowCache, get_cache
from .config import ConciergeConfig, load_config
from .contracts import StepFailure, StepRecord, WorkflowInstance, utcnow
from .errors import (
    ActiveWorkflowExists,
    ConcurrentModification,
    ExecutionFailed,
    InvariantViolation,
    NotPaused,
    ServiceError,
    TerminalState,
    ValidationFailed,
    WorkflowNotFound,
    WorkflowPaused,
)
from .persistence import WorkflowRepository, get_repository
from .registry import Step, WorkflowDefinition, WorkflowRegistry

logger = logging.getLogger(__name__)

DEFAULT_EXECUTE_TIMEOUT = 30.0


class WorkflowEngine:
    """Runs workflow instances against their registered definitions.

    ``advance`` is the only operation that moves ``current_step``. Each step
    either commits entirely (step data merged, index incremented, state
    persisted) or leaves the stored instance as it was apart from
    ``last_error``.

    Mutations of one instance are serialized in two layers: an in-process
    guard rejects a second concurrent ``advance`` immediately, and the
    repository's version check rejects writes based on a stale read from any
    process.
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        repository: WorkflowRepository | None = None,
        cache: ActiveWorkflowCache | None = None,
        execute_timeout: float = DEFAULT_EXECUTE_TIMEOUT,
        conflict_policy: Literal["route", "reject"] = "route",
    ) -> None:
        self._registry = registry
        self._repository = repository or get_repository()
        self._cache = cache
        self.execute_timeout = execute_timeout
        self.conflict_policy = conflict_policy
        self._in_flight: Set[str] = set()

    @classmethod
    def from_config(
        cls,
        registry: WorkflowRegistry,
        config: Optional[ConciergeConfig] = None,
        repository: WorkflowRepository | None = None,
    ) -> "WorkflowEngine":
        """Build an engine wired to the configured repository and cache."""
        config = config or load_config()
        return cls(
            registry,
            repository=repository or get_repository(config=config),
            cache=get_cache(config=config),
            execute_timeout=config.engine.execute_timeout,
            conflict_policy=config.engine.conflict_policy,
        )

    async def close(self) -> None:
        """Release the cache connection, if any."""
        if self._cache is not None:
            await self._cache.disconnect()

    @property
    def registry(self) -> WorkflowRegistry:
        return self._registry

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Public API
    async def start(
        self,
        workflow_type: str,
        owner_id: str,
        initial_input: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowInstance:
        """Create an instance of ``workflow_type`` and run its first step.

        When the owner already has a running workflow the input is routed to
        it as an ``advance`` (or rejected under the ``reject`` policy).
        """
        definition = self._registry.lookup(workflow_type)

        existing = await self.get_active(owner_id)
        if existing is not None and not existing.paused:
            if self.conflict_policy == "reject":
                raise ActiveWorkflowExists(
                    f"Owner {owner_id} already has active workflow "
                    f"{existing.id} ({existing.type})",
                    existing.id,
                )
            logger.info(
                f"Owner {owner_id} has active workflow {existing.id} ({existing.type}); "
                f"routing start of {workflow_type} as advance"
            )
            return await self.advance(existing.id, initial_input, timeout=timeout)

        instance = WorkflowInstance(
            type=workflow_type,
            owner_id=owner_id,
            total_steps=definition.total_steps,
        )
        instance.prompt = definition.prompt_for(instance)
        await self._repository.create_workflow(instance)
        await self._remember_active(instance)
        logger.info(
            f"Created workflow {instance.id} ({workflow_type}) for owner {owner_id}"
        )

        with self._guard(instance.id):
            return await self._run_step(instance, initial_input, timeout)

    async def advance(
        self,
        workflow_id: str,
        data: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowInstance:
        """Validate and execute the current step of ``workflow_id`` with ``data``."""
        with self._guard(workflow_id):
            instance = await self.get(workflow_id)
            return await self._run_step(instance, data, timeout)

    async def pause(self, workflow_id: str) -> WorkflowInstance:
        with self._guard(workflow_id):
            instance = await self.get(workflow_id)
            return await self._pause(instance)

    async def resume(self, workflow_id: str) -> WorkflowInstance:
        """Clear the paused flag; all other state is returned as persisted.

        Another running workflow of the same owner is paused first (policy
        ``route``) or the call fails with ``ActiveWorkflowExists`` (policy
        ``reject``), so an owner never has two running workflows.
        """
        with self._guard(workflow_id):
            instance = await self.get(workflow_id)
            self._ensure_not_terminal(instance, "resume")
            if not instance.paused:
                raise NotPaused(f"Workflow {workflow_id} is not paused", workflow_id)

            running = await self._repository.find_active(instance.owner_id)
            if running is not None and running.id != workflow_id and not running.paused:
                if self.conflict_policy == "reject":
                    raise ActiveWorkflowExists(
                        f"Owner {instance.owner_id} already has running workflow "
                        f"{running.id} ({running.type})",
                        running.id,
                    )
                with self._guard(running.id):
                    await self._pause(running)

            updated = instance.model_copy(
                update={"paused": False, "version": instance.version + 1}
            )
            await self._commit(updated, instance.version)
            await self._remember_active(updated)
            logger.info(f"Resumed workflow {workflow_id} at step {instance.current_step}")
            return updated

    async def cancel(self, workflow_id: str) -> WorkflowInstance:
        instance = await self.get(workflow_id)
        self._ensure_not_terminal(instance, "cancel")
        updated = instance.model_copy(
            update={
                "cancelled": True,
                "prompt": None,
                "version": instance.version + 1,
                "updated_at": utcnow(),
            }
        )
        await self._commit(updated, instance.version)
        await self._forget_active(updated)
        logger.info(f"Cancelled workflow {workflow_id} at step {instance.current_step}")
        return updated

    async def get_active(self, owner_id: str) -> WorkflowInstance | None:
        """Return the owner's live (not completed, not cancelled) instance."""
        if self._cache is not None:
            cached_id = await self._cache.get(owner_id)
            if cached_id:
                instance = await self._repository.get_workflow(cached_id)
                if (
                    instance is not None
                    and instance.is_active
                    and instance.owner_id == owner_id
                ):
                    return instance
                logger.debug(f"Stale active-workflow cache entry for owner {owner_id}")
                await self._cache.clear(owner_id)

        instance = await self._repository.find_active(owner_id)
        if instance is not None:
            await self._remember_active(instance)
        return instance

    async def get(self, workflow_id: str) -> WorkflowInstance:
        instance = await self._repository.get_workflow(workflow_id)
        if instance is None:
            raise WorkflowNotFound(workflow_id)
        return instance

    async def history(self, workflow_id: str) -> list[StepRecord]:
        await self.get(workflow_id)
        return await self._repository.list_steps(workflow_id)

    # ------------------------------------------------------------------
    # Step execution
    async def _run_step(
        self,
        instance: WorkflowInstance,
        data: Optional[Mapping[str, Any]],
        timeout: Optional[float],
    ) -> WorkflowInstance:
        data = dict(data or {})
        self._ensure_not_terminal(instance, "advance")
        if instance.paused:
            raise WorkflowPaused(
                f"Workflow {instance.id} is paused; resume it before continuing",
                instance.id,
            )

        definition = self._registry.lookup(instance.type)
        self._check_invariants(instance, definition)
        step = definition.steps[instance.current_step]
        started_at = utcnow()

        result = await step.validate(data, instance.model_copy(deep=True))
        if not result.valid:
            failure = StepFailure(
                step=step.name,
                step_index=instance.current_step,
                kind="validation",
                message=result.reason or f"Invalid input for step {step.name}",
                suggestions=result.suggestions,
            )
            failed = await self._write_failure(instance, failure)
            await self._record(instance, step, data, "invalid", started_at, error=failure.message)
            logger.info(
                f"Validation failed for workflow {instance.id} step {step.name}: {failure.message}"
            )
            raise ValidationFailed(failure.message, failed, step.name, failure.suggestions)

        limit = timeout if timeout is not None else self.execute_timeout
        try:
            output = await asyncio.wait_for(
                step.execute(data, instance.model_copy(deep=True)), timeout=limit
            )
        except asyncio.TimeoutError as exc:
            failure = StepFailure(
                step=step.name,
                step_index=instance.current_step,
                kind="execution",
                message=f"Step {step.name} timed out after {limit}s",
                timeout=True,
            )
            failed = await self._write_failure(instance, failure)
            await self._record(instance, step, data, "timeout", started_at, error=failure.message)
            logger.warning(f"Workflow {instance.id} step {step.name} timed out after {limit}s")
            raise ExecutionFailed(failure.message, failed, step.name, timeout=True) from exc
        except Exception as exc:
            suggestions = exc.suggestions if isinstance(exc, ServiceError) else []
            failure = StepFailure(
                step=step.name,
                step_index=instance.current_step,
                kind="execution",
                message=str(exc) or exc.__class__.__name__,
                suggestions=suggestions,
            )
            failed = await self._write_failure(instance, failure)
            await self._record(instance, step, data, "failed", started_at, error=failure.message)
            logger.warning(f"Workflow {instance.id} step {step.name} failed: {exc}")
            raise ExecutionFailed(
                failure.message, failed, step.name, suggestions=suggestions
            ) from exc

        output = dict(output or {})
        next_step = instance.current_step + 1
        updated = instance.model_copy(
            update={
                "step_data": {**instance.step_data, **output},
                "current_step": next_step,
                "completed": next_step == instance.total_steps,
                "last_error": None,
                "version": instance.version + 1,
                "updated_at": utcnow(),
            },
            deep=True,
        )
        updated.prompt = definition.prompt_for(updated)

        try:
            await self._commit(updated, instance.version)
        except TerminalState:
            await self._record(instance, step, data, "discarded", started_at, output=output)
            logger.warning(
                f"Discarding late result of step {step.name} for workflow {instance.id}: "
                "instance was cancelled while the step was running"
            )
            raise
        await self._record(instance, step, data, "completed", started_at, output=output)

        if updated.completed:
            await self._forget_active(updated)
            logger.info(f"Workflow {instance.id} ({instance.type}) completed")
        else:
            logger.info(
                f"Workflow {instance.id} advanced past {step.name} "
                f"({updated.current_step}/{updated.total_steps})"
            )
        return updated

    async def _write_failure(
        self, instance: WorkflowInstance, failure: StepFailure
    ) -> WorkflowInstance:
        failed = instance.model_copy(
            update={"last_error": failure, "version": instance.version + 1}
        )
        await self._commit(failed, instance.version)
        return failed

    async def _commit(self, updated: WorkflowInstance, expected_version: int) -> None:
        try:
            await self._repository.save_workflow(updated, expected_version)
        except ConcurrentModification:
            current = await self._repository.get_workflow(updated.id)
            if current is not None and current.is_terminal:
                raise TerminalState(
                    f"Workflow {updated.id} is {current.status}", updated.id
                ) from None
            raise

    async def _record(
        self,
        instance: WorkflowInstance,
        step: Step,
        data: dict[str, Any],
        status: str,
        started_at,
        output: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        await self._repository.record_step(
            StepRecord(
                workflow_id=instance.id,
                step_name=step.name,
                step_index=instance.current_step,
                status=status,
                input=data,
                output=output,
                error=error,
                started_at=started_at,
                completed_at=utcnow(),
            )
        )

    # ------------------------------------------------------------------
    # Helpers
    @contextmanager
    def _guard(self, workflow_id: str) -> Iterator[None]:
        # check and claim happen without an await in between
        if workflow_id in self._in_flight:
            raise ConcurrentModification(
                f"Workflow {workflow_id} is already being advanced", workflow_id
            )
        self._in_flight.add(workflow_id)
        try:
            yield
        finally:
            self._in_flight.discard(workflow_id)

    async def _pause(self, instance: WorkflowInstance) -> WorkflowInstance:
        self._ensure_not_terminal(instance, "pause")
        if instance.paused:
            return instance
        updated = instance.model_copy(
            update={"paused": True, "version": instance.version + 1}
        )
        await self._commit(updated, instance.version)
        logger.info(f"Paused workflow {instance.id} at step {instance.current_step}")
        return updated

    @staticmethod
    def _ensure_not_terminal(instance: WorkflowInstance, operation: str) -> None:
        if instance.is_terminal:
            raise TerminalState(
                f"Workflow {instance.id} is {instance.status}; cannot {operation}",
                instance.id,
            )

    @staticmethod
    def _check_invariants(
        instance: WorkflowInstance, definition: WorkflowDefinition
    ) -> None:
        problem = None
        if instance.total_steps != definition.total_steps:
            problem = (
                f"instance has {instance.total_steps} steps but definition "
                f"{definition.type} has {definition.total_steps}"
            )
        elif not 0 <= instance.current_step < instance.total_steps:
            problem = (
                f"current step {instance.current_step} outside 0..{instance.total_steps - 1}"
            )
        if problem:
            logger.critical(f"Invariant violation in workflow {instance.id}: {problem}")
            raise InvariantViolation(
                f"Workflow {instance.id} is inconsistent: {problem}", instance.id
            )

    async def _remember_active(self, instance: WorkflowInstance) -> None:
        if self._cache is not None and instance.is_active:
            await self._cache.set(instance.owner_id, instance.id)

    async def _forget_active(self, instance: WorkflowInstance) -> None:
        if self._cache is None:
            return
        if await self._cache.get(instance.owner_id) == instance.id:
            await self._cache.clear(instance.owner_id)
