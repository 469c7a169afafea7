"""Core data models for Conductor."""

from .agents import (
    AgentCapabilities,
    AgentConfiguration,
    AgentInitializationResult,
    AgentKind,
    AgentStatus,
    AgentStatusInfo,
)
from .approval import (
    ApprovalContext,
    ApprovalPolicy,
    ApprovalRecord,
    ApprovalRequest,
    ApprovalResult,
    ApprovalSettings,
)
from .events import BusEvent, Topic
from .messages import (
    AgentResponse,
    Attachment,
    Message,
    MessageRole,
    ResponseType,
    TokenUsage,
)
from .orchestration import (
    OrchestrationPlan,
    OrchestrationProgress,
    OrchestrationRequest,
    OrchestrationResult,
    OrchestrationStep,
    OrchestrationStrategy,
    StepResult,
    StepStatus,
)
from .tools import ExecutionContext, ToolCall, ToolExecutionResult, ValidationResult
from .tracing import TraceEvent

__all__ = [
    # Agents
    "AgentKind",
    "AgentStatus",
    "AgentConfiguration",
    "AgentCapabilities",
    "AgentInitializationResult",
    "AgentStatusInfo",
    # Messages
    "Message",
    "MessageRole",
    "Attachment",
    "AgentResponse",
    "ResponseType",
    "TokenUsage",
    # Tools
    "ToolCall",
    "ToolExecutionResult",
    "ValidationResult",
    "ExecutionContext",
    # Approval
    "ApprovalPolicy",
    "ApprovalSettings",
    "ApprovalContext",
    "ApprovalResult",
    "ApprovalRequest",
    "ApprovalRecord",
    # Orchestration
    "OrchestrationStrategy",
    "OrchestrationStep",
    "OrchestrationPlan",
    "StepStatus",
    "StepResult",
    "OrchestrationResult",
    "OrchestrationProgress",
    "OrchestrationRequest",
    # Events
    "BusEvent",
    "Topic",
    # Tracing
    "TraceEvent",
]
