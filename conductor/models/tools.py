"""Tool invocation data models."""

import asyncio
import uuid
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation requested by an agent."""

    name: str
    parameters: dict = field(default_factory=dict)
    agent_id: str = ""
    session_id: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class ToolExecutionResult:
    """Outcome of one ToolCall. Never mutated after creation."""

    success: bool
    output: str = ""
    error: str | None = None
    elapsed: float = 0.0  # seconds
    metadata: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, output: str = "", **metadata) -> "ToolExecutionResult":
        return cls(success=True, output=output, metadata=metadata)

    @classmethod
    def failed(cls, error: str, elapsed: float = 0.0, **metadata) -> "ToolExecutionResult":
        return cls(success=False, error=error, elapsed=elapsed, metadata=metadata)

    def with_elapsed(self, elapsed: float) -> "ToolExecutionResult":
        """Copy of this result with elapsed time filled in."""
        return replace(self, elapsed=elapsed)


@dataclass
class ValidationResult:
    """Handler parameter validation outcome."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def failure(cls, *errors: str) -> "ValidationResult":
        return cls(is_valid=False, errors=list(errors))


@dataclass
class ExecutionContext:
    """Ambient information for a tool run."""

    agent_id: str = ""
    session_id: str = ""
    working_directory: str = "."
    cancel_event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()
