import pytest

from concierge import WorkflowRegistry
from concierge.contracts import WorkflowInstance
from concierge.errors import DuplicateWorkflowType, RegistryFrozen, UnknownWorkflowType
from concierge.registry import Step, definition
from conftest import EchoStep


def test_register_and_lookup():
    registry = WorkflowRegistry()
    demo = definition("demo", [EchoStep("a"), EchoStep("b")], description="Demo")
    registry.register(demo)

    assert registry.lookup("demo") is demo
    assert "demo" in registry
    assert len(registry) == 1
    assert demo.total_steps == 2
    assert demo.step_names == ["a", "b"]
    assert isinstance(demo.steps[0], Step)


def test_duplicate_type_rejected():
    registry = WorkflowRegistry()
    registry.register(definition("demo", [EchoStep("a")]))
    with pytest.raises(DuplicateWorkflowType):
        registry.register(definition("demo", [EchoStep("b")]))


def test_unknown_type():
    with pytest.raises(UnknownWorkflowType) as exc_info:
        WorkflowRegistry().lookup("missing")
    assert exc_info.value.workflow_type == "missing"
    assert exc_info.value.to_dict()["retryable"] is False


def test_frozen_registry_is_read_only():
    registry = WorkflowRegistry().freeze()
    with pytest.raises(RegistryFrozen):
        registry.register(definition("demo", [EchoStep("a")]))


def test_definition_checks_steps():
    with pytest.raises(ValueError):
        definition("empty", [])
    with pytest.raises(ValueError):
        definition("dupes", [EchoStep("a"), EchoStep("a")])


def test_prompt_for_follows_current_step():
    demo = definition(
        "demo",
        [EchoStep("a"), EchoStep("b", field="other")],
        completion_prompt=lambda wf: f"done {wf.step_data}",
    )
    wf = WorkflowInstance(type="demo", owner_id="u1", total_steps=2)
    assert demo.prompt_for(wf) == "Enter value for a"

    wf.current_step = 1
    assert demo.prompt_for(wf) == "Enter other for b"

    wf.current_step = 2
    wf.completed = True
    wf.step_data = {"a": 1}
    assert demo.prompt_for(wf) == "done {'a': 1}"
