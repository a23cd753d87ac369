import asyncio
from typing import Any, Mapping

import pytest

from concierge import WorkflowEngine, WorkflowRegistry, build_registry
from concierge.cache import InMemoryActiveWorkflowCache
from concierge.contracts import ValidationResult, WorkflowInstance
from concierge.errors import ServiceError
from concierge.persistence import InMemoryWorkflowRepository
from concierge.registry import definition
from concierge.services import demo_services


class EchoStep:
    """Copies ``data[field]`` into ``step_data[name]``.

    Validation rejects a missing field or the literal value ``"bad"``.
    """

    def __init__(self, name: str, field: str = "value", fail_times: int = 0, delay: float = 0.0):
        self.name = name
        self.field = field
        self.fail_times = fail_times
        self.delay = delay
        self.calls = 0

    async def validate(self, data: Mapping[str, Any], instance: WorkflowInstance) -> ValidationResult:
        if self.field not in data:
            return ValidationResult.invalid(f"{self.name} needs {self.field}")
        if data[self.field] == "bad":
            return ValidationResult.invalid("bad value", suggestions=["good"])
        return ValidationResult.ok()

    async def execute(self, data: Mapping[str, Any], instance: WorkflowInstance) -> Mapping[str, Any]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ServiceError(f"{self.name} backend down")
        return {self.name: data[self.field]}

    def prompt(self, instance: WorkflowInstance) -> str:
        return f"Enter {self.field} for {self.name}"


@pytest.fixture
def make_engine():
    """Build an engine around a ``demo`` workflow made of the given steps."""

    def _make(*steps, repository=None, **kwargs) -> WorkflowEngine:
        steps = steps or (EchoStep("a"), EchoStep("b"), EchoStep("c"))
        registry = WorkflowRegistry()
        registry.register(definition("demo", steps))
        registry.register(definition("other", [EchoStep("x")]))
        registry.freeze()
        kwargs.setdefault("cache", InMemoryActiveWorkflowCache())
        return WorkflowEngine(
            registry, repository or InMemoryWorkflowRepository(), **kwargs
        )

    return _make


@pytest.fixture
def services():
    return demo_services()


@pytest.fixture
def repo():
    return InMemoryWorkflowRepository()


@pytest.fixture
def engine(services, repo):
    return WorkflowEngine(
        build_registry(services), repo, cache=InMemoryActiveWorkflowCache()
    )
