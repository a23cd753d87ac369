"""Built-in concierge workflows."""

from __future__ import annotations

from ..registry import WorkflowRegistry
from ..services import ServiceBundle
from . import approval_status, mentor_booking, resource_discovery, submission_tracking

BUILTIN_WORKFLOWS = (
    mentor_booking,
    submission_tracking,
    resource_discovery,
    approval_status,
)


def build_registry(services: ServiceBundle, freeze: bool = True) -> WorkflowRegistry:
    """Register every built-in workflow against ``services``."""
    registry = WorkflowRegistry()
    for module in BUILTIN_WORKFLOWS:
        registry.register(module.build_definition(services))
    if freeze:
        registry.freeze()
    return registry


__all__ = ["BUILTIN_WORKFLOWS", "build_registry"]
