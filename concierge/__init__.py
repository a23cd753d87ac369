"""Concierge: guided multi-step workflows with pause and resume."""

from .cache import get_cache
from .config import ConciergeConfig, load_config
from .contracts import StepRecord, ValidationResult, WorkflowInstance
from .engine import WorkflowEngine
from .persistence import get_repository
from .registry import Step, WorkflowDefinition, WorkflowRegistry
from .workflows import build_registry

__version__ = "0.1.0"
__all__ = [
    "ConciergeConfig",
    "Step",
    "StepRecord",
    "ValidationResult",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowInstance",
    "WorkflowRegistry",
    "build_registry",
    "get_cache",
    "get_repository",
    "load_config",
]
