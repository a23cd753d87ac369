import asyncio
import logging

import pytest

from concierge.cache import InMemoryActiveWorkflowCache
from concierge.contracts import WorkflowInstance
from concierge.errors import (
    ActiveWorkflowExists,
    ConcurrentModification,
    ExecutionFailed,
    InvariantViolation,
    NotPaused,
    TerminalState,
    UnknownWorkflowType,
    ValidationFailed,
    WorkflowNotFound,
    WorkflowPaused,
)
from concierge.persistence import InMemoryWorkflowRepository
from conftest import EchoStep


@pytest.mark.asyncio
async def test_start_runs_first_step(make_engine):
    engine = make_engine()

    wf = await engine.start("demo", "u1", {"value": 1})

    assert wf.current_step == 1
    assert wf.total_steps == 3
    assert wf.step_data == {"a": 1}
    assert wf.completed is False
    assert wf.prompt == "Enter value for b"
    stored = await engine.get(wf.id)
    assert stored == wf


@pytest.mark.asyncio
async def test_start_unknown_type(make_engine):
    engine = make_engine()
    with pytest.raises(UnknownWorkflowType):
        await engine.start("nope", "u1", {})


@pytest.mark.asyncio
async def test_advance_missing_workflow(make_engine):
    engine = make_engine()
    with pytest.raises(WorkflowNotFound):
        await engine.advance("missing", {"value": 1})


@pytest.mark.asyncio
async def test_successful_advances_are_monotonic(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})
    steps = [wf.current_step]
    completions = [wf.completed]

    for value in (2, 3):
        wf = await engine.advance(wf.id, {"value": value})
        steps.append(wf.current_step)
        completions.append(wf.completed)

    assert steps == [1, 2, 3]
    assert completions == [False, False, True]
    assert wf.step_data == {"a": 1, "b": 2, "c": 3}
    assert wf.prompt == "All done."

    with pytest.raises(TerminalState):
        await engine.advance(wf.id, {"value": 4})
    assert (await engine.get(wf.id)) == wf


@pytest.mark.asyncio
async def test_validation_failure_only_sets_last_error(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})

    with pytest.raises(ValidationFailed) as exc_info:
        await engine.advance(wf.id, {"value": "bad"})

    err = exc_info.value
    assert err.step == "b"
    assert err.step_index == 1
    assert err.suggestions == ["good"]
    assert err.retryable

    stored = await engine.get(wf.id)
    assert stored.current_step == wf.current_step
    assert stored.step_data == wf.step_data
    assert stored.completed == wf.completed
    assert stored.updated_at == wf.updated_at
    assert stored.last_error.kind == "validation"
    assert stored.last_error.message == "bad value"
    assert err.instance == stored


@pytest.mark.asyncio
async def test_execution_failure_preserves_progress(make_engine):
    b = EchoStep("b", fail_times=1)
    engine = make_engine(EchoStep("a"), b, EchoStep("c"))
    wf = await engine.start("demo", "u1", {"value": 1})

    with pytest.raises(ExecutionFailed) as exc_info:
        await engine.advance(wf.id, {"value": 2})

    assert exc_info.value.timeout is False
    assert isinstance(exc_info.value.__cause__, Exception)
    stored = await engine.get(wf.id)
    assert stored.current_step == 1
    assert stored.step_data == {"a": 1}
    assert stored.last_error.kind == "execution"
    assert stored.last_error.step == "b"
    assert "backend down" in stored.last_error.message


@pytest.mark.asyncio
async def test_retry_after_failure_increments_once(make_engine):
    b = EchoStep("b", fail_times=1)
    engine = make_engine(EchoStep("a"), b, EchoStep("c"))
    wf = await engine.start("demo", "u1", {"value": 1})

    with pytest.raises(ExecutionFailed):
        await engine.advance(wf.id, {"value": 2})
    wf = await engine.advance(wf.id, {"value": 22})

    assert wf.current_step == 2
    assert wf.step_data == {"a": 1, "b": 22}
    assert wf.last_error is None
    assert b.calls == 2


@pytest.mark.asyncio
async def test_execute_timeout_is_retryable_failure(make_engine):
    engine = make_engine(EchoStep("a"), EchoStep("b", delay=0.5))
    wf = await engine.start("demo", "u1", {"value": 1})

    with pytest.raises(ExecutionFailed) as exc_info:
        await engine.advance(wf.id, {"value": 2}, timeout=0.05)

    assert exc_info.value.timeout is True
    stored = await engine.get(wf.id)
    assert stored.current_step == 1
    assert stored.last_error.timeout is True
    history = await engine.history(wf.id)
    assert [r.status for r in history] == ["completed", "timeout"]


@pytest.mark.asyncio
async def test_engine_default_timeout(make_engine):
    engine = make_engine(EchoStep("a", delay=0.5), execute_timeout=0.05)
    with pytest.raises(ExecutionFailed) as exc_info:
        await engine.start("demo", "u1", {"value": 1})
    assert exc_info.value.timeout is True
    assert exc_info.value.instance.current_step == 0


@pytest.mark.asyncio
async def test_pause_resume_leaves_data_untouched(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})
    before = wf.model_dump(exclude={"paused", "version"})

    paused = await engine.pause(wf.id)
    assert paused.paused is True
    assert paused.status == "paused"
    resumed = await engine.resume(wf.id)

    assert resumed.paused is False
    assert resumed.model_dump(exclude={"paused", "version"}) == before


@pytest.mark.asyncio
async def test_paused_workflow_rejects_advance(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})
    await engine.pause(wf.id)

    with pytest.raises(WorkflowPaused):
        await engine.advance(wf.id, {"value": 2})
    await engine.resume(wf.id)
    wf = await engine.advance(wf.id, {"value": 2})
    assert wf.current_step == 2


@pytest.mark.asyncio
async def test_resume_requires_pause(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})
    with pytest.raises(NotPaused):
        await engine.resume(wf.id)


@pytest.mark.asyncio
async def test_completed_workflow_is_immutable(make_engine):
    engine = make_engine(EchoStep("a"))
    wf = await engine.start("demo", "u1", {"value": 1})
    assert wf.completed

    for operation in (
        engine.advance(wf.id, {"value": 2}),
        engine.pause(wf.id),
        engine.resume(wf.id),
        engine.cancel(wf.id),
    ):
        with pytest.raises(TerminalState):
            await operation
    assert (await engine.get(wf.id)) == wf


@pytest.mark.asyncio
async def test_cancelled_workflow_is_immutable(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})
    cancelled = await engine.cancel(wf.id)
    assert cancelled.status == "cancelled"
    assert cancelled.step_data == {"a": 1}

    for operation in (
        engine.advance(wf.id, {"value": 2}),
        engine.pause(wf.id),
        engine.resume(wf.id),
        engine.cancel(wf.id),
    ):
        with pytest.raises(TerminalState):
            await operation
    assert (await engine.get(wf.id)) == cancelled
    assert await engine.get_active("u1") is None


@pytest.mark.asyncio
async def test_concurrent_advances_on_same_instance(make_engine):
    engine = make_engine(EchoStep("a"), EchoStep("b", delay=0.05), EchoStep("c"))
    wf = await engine.start("demo", "u1", {"value": 1})

    results = await asyncio.gather(
        engine.advance(wf.id, {"value": "x"}),
        engine.advance(wf.id, {"value": "y"}),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, WorkflowInstance)]
    losers = [r for r in results if isinstance(r, ConcurrentModification)]
    assert len(winners) == 1 and len(losers) == 1
    stored = await engine.get(wf.id)
    assert stored.current_step == 2
    assert stored.step_data["b"] == winners[0].step_data["b"]


@pytest.mark.asyncio
async def test_version_check_across_engines(make_engine):
    repo = InMemoryWorkflowRepository()
    first = make_engine(EchoStep("a"), EchoStep("b", delay=0.05), EchoStep("c"), repository=repo)
    second = make_engine(EchoStep("a"), EchoStep("b", delay=0.05), EchoStep("c"), repository=repo)
    wf = await first.start("demo", "u1", {"value": 1})

    results = await asyncio.gather(
        first.advance(wf.id, {"value": "x"}),
        second.advance(wf.id, {"value": "y"}),
        return_exceptions=True,
    )

    assert sum(isinstance(r, WorkflowInstance) for r in results) == 1
    assert sum(isinstance(r, ConcurrentModification) for r in results) == 1
    assert (await repo.get_workflow(wf.id)).current_step == 2


@pytest.mark.asyncio
async def test_cancel_during_execute_discards_result(make_engine):
    engine = make_engine(EchoStep("a"), EchoStep("b", delay=0.1), EchoStep("c"))
    wf = await engine.start("demo", "u1", {"value": 1})

    pending = asyncio.create_task(engine.advance(wf.id, {"value": 2}))
    await asyncio.sleep(0.02)
    await engine.cancel(wf.id)

    with pytest.raises(TerminalState):
        await pending
    stored = await engine.get(wf.id)
    assert stored.cancelled
    assert stored.current_step == 1
    assert "b" not in stored.step_data
    history = await engine.history(wf.id)
    assert history[-1].status == "discarded"


@pytest.mark.asyncio
async def test_task_cancellation_leaves_instance_untouched(make_engine):
    engine = make_engine(EchoStep("a"), EchoStep("b", delay=0.5), EchoStep("c"))
    wf = await engine.start("demo", "u1", {"value": 1})

    pending = asyncio.create_task(engine.advance(wf.id, {"value": 2}))
    await asyncio.sleep(0.02)
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    assert (await engine.get(wf.id)) == wf
    engine_b_fast = make_engine(repository=engine.repository)
    wf = await engine_b_fast.advance(wf.id, {"value": 2})
    assert wf.current_step == 2


@pytest.mark.asyncio
async def test_invariant_violation_is_reported(make_engine, caplog):
    repo = InMemoryWorkflowRepository()
    engine = make_engine(repository=repo)
    broken = WorkflowInstance(type="demo", owner_id="u1", total_steps=5)
    await repo.create_workflow(broken)

    with caplog.at_level(logging.CRITICAL, logger="concierge.engine"):
        with pytest.raises(InvariantViolation):
            await engine.advance(broken.id, {"value": 1})
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


@pytest.mark.asyncio
async def test_start_routes_to_running_workflow(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})

    routed = await engine.start("other", "u1", {"value": 2})

    assert routed.id == wf.id
    assert routed.type == "demo"
    assert routed.current_step == 2
    assert len(await engine.repository.list_workflows("u1")) == 1


@pytest.mark.asyncio
async def test_start_reject_policy(make_engine):
    engine = make_engine(conflict_policy="reject")
    await engine.start("demo", "u1", {"value": 1})
    with pytest.raises(ActiveWorkflowExists):
        await engine.start("other", "u1", {"value": 2})


@pytest.mark.asyncio
async def test_start_with_paused_workflow_creates_new(make_engine):
    engine = make_engine()
    first = await engine.start("demo", "u1", {"value": 1})
    await engine.pause(first.id)

    second = await engine.start("other", "u1", {"value": 9})

    assert second.id != first.id
    assert second.completed
    assert (await engine.get(first.id)).paused
    active = await engine.get_active("u1")
    assert active.id == first.id


@pytest.mark.asyncio
async def test_start_validation_failure_keeps_instance(make_engine):
    engine = make_engine()
    with pytest.raises(ValidationFailed) as exc_info:
        await engine.start("demo", "u1", {})

    created = exc_info.value.instance
    assert created.current_step == 0
    active = await engine.get_active("u1")
    assert active.id == created.id
    assert active.last_error.step == "a"


@pytest.mark.asyncio
async def test_get_active_lifecycle(make_engine):
    engine = make_engine(EchoStep("a"), EchoStep("b"))
    assert await engine.get_active("u1") is None

    wf = await engine.start("demo", "u1", {"value": 1})
    assert (await engine.get_active("u1")).id == wf.id
    assert await engine.get_active("u2") is None

    await engine.advance(wf.id, {"value": 2})
    assert await engine.get_active("u1") is None


@pytest.mark.asyncio
async def test_active_cache_is_rebuilt_from_repository(make_engine):
    repo = InMemoryWorkflowRepository()
    engine = make_engine(repository=repo)
    wf = await engine.start("demo", "u1", {"value": 1})

    stale = InMemoryActiveWorkflowCache()
    await stale.set("u1", "does-not-exist")
    other = make_engine(repository=repo, cache=stale)

    assert (await other.get_active("u1")).id == wf.id
    assert await stale.get("u1") == wf.id

    lost = make_engine(repository=repo, cache=InMemoryActiveWorkflowCache())
    assert (await lost.get_active("u1")).id == wf.id


@pytest.mark.asyncio
async def test_history_records_every_attempt(make_engine):
    engine = make_engine()
    wf = await engine.start("demo", "u1", {"value": 1})
    with pytest.raises(ValidationFailed):
        await engine.advance(wf.id, {})
    await engine.advance(wf.id, {"value": 2})

    history = await engine.history(wf.id)
    assert [(r.step_name, r.status) for r in history] == [
        ("a", "completed"),
        ("b", "invalid"),
        ("b", "completed"),
    ]
    assert history[0].output == {"a": 1}


@pytest.mark.asyncio
async def test_pause_during_execute_fails_fast(make_engine):
    engine = make_engine(EchoStep("a"), EchoStep("b", delay=0.1), EchoStep("c"))
    wf = await engine.start("demo", "u1", {"value": 1})

    pending = asyncio.create_task(engine.advance(wf.id, {"value": 2}))
    await asyncio.sleep(0.02)
    with pytest.raises(ConcurrentModification):
        await engine.pause(wf.id)

    advanced = await pending
    assert advanced.current_step == 2
    assert advanced.step_data == {"a": 1, "b": 2}

    paused = await engine.pause(wf.id)
    assert paused.paused
    assert paused.step_data == {"a": 1, "b": 2}


@pytest.mark.asyncio
async def test_resume_pauses_other_running_workflow(make_engine):
    engine = make_engine()
    first = await engine.start("demo", "u1", {"value": 1})
    await engine.pause(first.id)
    second = await engine.start("demo", "u1", {"value": 2})
    assert second.id != first.id

    resumed = await engine.resume(first.id)

    assert resumed.status == "running"
    assert (await engine.get(second.id)).paused
    running = [wf for wf in await engine.repository.list_workflows("u1") if wf.status == "running"]
    assert [wf.id for wf in running] == [first.id]
    assert (await engine.get_active("u1")).id == first.id
    rebuilt = make_engine(repository=engine.repository)
    assert (await rebuilt.get_active("u1")).id == first.id


@pytest.mark.asyncio
async def test_resume_reject_policy_keeps_running_workflow(make_engine):
    engine = make_engine(conflict_policy="reject")
    first = await engine.start("demo", "u1", {"value": 1})
    await engine.pause(first.id)
    second = await engine.start("demo", "u1", {"value": 2})

    with pytest.raises(ActiveWorkflowExists) as exc_info:
        await engine.resume(first.id)

    assert exc_info.value.workflow_id == second.id
    assert (await engine.get(first.id)).paused
    assert (await engine.get(second.id)).status == "running"
