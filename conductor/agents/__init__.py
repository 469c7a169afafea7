"""Agent abstraction, the two concrete agent kinds, registry and factory."""

from .base import (
    AgentStateMachine,
    IAgent,
    ToolDispatcher,
    collect_response,
    describe_command,
)
from .factory import AgentFactory
from .health import HealthMonitor
from .process_agent import ProcessAgent
from .provider_agent import ProviderAgent
from .registry import AgentRegistry, IAgentRegistry
from .stream import StreamAccumulator

__all__ = [
    "AgentStateMachine",
    "IAgent",
    "ToolDispatcher",
    "collect_response",
    "describe_command",
    "AgentFactory",
    "HealthMonitor",
    "ProcessAgent",
    "ProviderAgent",
    "AgentRegistry",
    "IAgentRegistry",
    "StreamAccumulator",
]
