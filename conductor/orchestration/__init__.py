"""Plan creation, validation and execution."""

from .orchestrator import (
    IOrchestrator,
    Orchestrator,
    ProgressSink,
    StepReorderHook,
    prioritize_critical_path,
)
from .planner import (
    create_plan,
    find_cycle,
    generate_steps,
    topological_batches,
    validate_plan,
)

__all__ = [
    "IOrchestrator",
    "Orchestrator",
    "ProgressSink",
    "StepReorderHook",
    "prioritize_critical_path",
    "create_plan",
    "find_cycle",
    "generate_steps",
    "topological_batches",
    "validate_plan",
]
