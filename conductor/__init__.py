"""Conductor: multi-agent orchestration core."""

from .agents import AgentFactory, AgentRegistry, IAgent, ProcessAgent, ProviderAgent
from .app import Application, IApplication
from .approval import ApprovalGate, IApprovalGate
from .event_bus import EventBus, IEventBus
from .llm import ILLMProvider, create_provider
from .models import (
    AgentConfiguration,
    AgentKind,
    AgentStatus,
    ApprovalContext,
    ApprovalResult,
    BusEvent,
    Message,
    OrchestrationPlan,
    OrchestrationRequest,
    OrchestrationResult,
    OrchestrationStrategy,
    ToolCall,
    ToolExecutionResult,
    Topic,
    TraceEvent,
)
from .orchestration import IOrchestrator, Orchestrator
from .storage import IStorage, Storage
from .tools import IToolExecutor, ToolExecutor
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Models
    "AgentConfiguration",
    "AgentKind",
    "AgentStatus",
    "ApprovalContext",
    "ApprovalResult",
    "BusEvent",
    "Message",
    "OrchestrationPlan",
    "OrchestrationRequest",
    "OrchestrationResult",
    "OrchestrationStrategy",
    "ToolCall",
    "ToolExecutionResult",
    "Topic",
    "TraceEvent",
    # Components
    "IStorage",
    "Storage",
    "IEventBus",
    "EventBus",
    "ITracker",
    "Tracker",
    "IToolExecutor",
    "ToolExecutor",
    "IApprovalGate",
    "ApprovalGate",
    "IAgent",
    "ProcessAgent",
    "ProviderAgent",
    "AgentRegistry",
    "AgentFactory",
    "ILLMProvider",
    "create_provider",
    "IOrchestrator",
    "Orchestrator",
]
