"""Error taxonomy for the orchestration core."""


class ConductorError(Exception):
    """Base class for all errors raised by the core."""


class InitializationError(ConductorError):
    """Bad configuration, missing credentials or unsupported backend."""


class UnsupportedProviderError(InitializationError):
    """Configured provider value has no concrete implementation."""


class UnsupportedAgentTypeError(ConductorError):
    """Agent factory received an unknown agent kind."""


class ProcessCrashError(ConductorError):
    """Child process exited or became unresponsive."""


class AgentTimeoutError(ConductorError):
    """Operation exceeded its time budget."""


class ValidationError(ConductorError):
    """Tool parameters failed handler validation."""


class ToolExecutionError(ConductorError):
    """Domain failure raised by a tool handler; its message is surfaced as-is."""


class ApprovalDeniedError(ConductorError):
    """Tool invocation was denied by the approval gate."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PlanValidationError(ConductorError):
    """Plan references unknown steps or agents."""


class DependencyCycleError(PlanValidationError):
    """Plan step graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


class InvalidStatusTransitionError(ConductorError):
    """Illegal agent status transition."""


class InvalidPatternError(ConductorError, ValueError):
    """Approval pattern is not a valid regular expression."""
