"""Orchestration plan and result models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class OrchestrationStrategy(str, Enum):
    """How plan steps are scheduled."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ADAPTIVE = "adaptive"


class StepStatus(str, Enum):
    """Terminal (or pending) state of one step."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class OrchestrationStep:
    """One unit of work assigned to one agent."""

    id: str
    order: int
    agent_id: str
    task: str
    depends_on: list[str] = field(default_factory=list)
    timeout: float = 300.0  # seconds
    parallel: bool = True


@dataclass
class OrchestrationPlan:
    """A goal decomposed into dependency-ordered steps."""

    goal: str
    strategy: OrchestrationStrategy
    steps: list[OrchestrationStep]
    required_agents: set[str] = field(default_factory=set)
    shared_context: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get_step(self, step_id: str) -> OrchestrationStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass
class StepResult:
    """Outcome of one executed (or skipped) step."""

    step_id: str
    agent_id: str
    status: StepStatus
    output: str = ""
    error: str | None = None
    started_at: datetime | None = None
    duration: float = 0.0  # seconds

    @property
    def success(self) -> bool:
        return self.status == StepStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "step_id": self.step_id,
            "agent_id": self.agent_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "duration": self.duration,
        }


@dataclass
class OrchestrationResult:
    """Aggregated outcome of a plan run."""

    plan_id: str
    execution_id: str
    success: bool
    step_results: list[StepResult]
    summary: str
    final_output: str
    total_duration: float  # seconds
    shared_context: dict = field(default_factory=dict)


@dataclass
class OrchestrationProgress:
    """Incremental progress report."""

    execution_id: str
    plan_id: str
    steps_completed: int
    total_steps: int
    current_step: str | None = None
    current_agent: str | None = None
    elapsed: float = 0.0
    is_finished: bool = False

    @property
    def percent_complete(self) -> float:
        if self.total_steps == 0:
            return 100.0
        return round(100.0 * self.steps_completed / self.total_steps, 1)


@dataclass
class OrchestrationRequest:
    """Input to plan creation.

    When explicit steps are given they are used as-is; otherwise steps are
    generated from the goal according to the strategy.
    """

    goal: str
    agent_ids: list[str]
    strategy: OrchestrationStrategy = OrchestrationStrategy.SEQUENTIAL
    steps: list[OrchestrationStep] | None = None
    required_agents: set[str] | None = None
    max_steps: int = 10
    step_timeout: float | None = None
