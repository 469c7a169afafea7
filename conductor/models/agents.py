"""Agent-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class AgentKind(str, Enum):
    """How an agent is backed."""

    PROCESS = "process"
    PROVIDER = "provider"


class AgentStatus(str, Enum):
    """Agent lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    BUSY = "busy"
    ERROR = "error"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class AgentConfiguration:
    """Caller-supplied agent configuration. Immutable once built."""

    agent_id: str
    name: str
    kind: AgentKind | str
    working_directory: str = "."
    settings: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "settings", MappingProxyType(dict(self.settings)))

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Read a free-form setting, falling back to default when absent or None."""
        value = self.settings.get(key)
        return default if value is None else value


@dataclass
class AgentCapabilities:
    """Static description of what an agent supports."""

    supports_streaming: bool = True
    supports_tools: bool = True
    supports_file_operations: bool = True
    max_concurrent_requests: int = 1
    max_tokens: int = 100_000
    supported_models: list[str] = field(default_factory=list)
    tools: list[dict] = field(default_factory=list)  # tool schemas


@dataclass
class AgentInitializationResult:
    """Outcome of Agent.initialize()."""

    success: bool
    capabilities: AgentCapabilities | None = None
    error: str | None = None

    @classmethod
    def ok(cls, capabilities: AgentCapabilities) -> "AgentInitializationResult":
        return cls(success=True, capabilities=capabilities)

    @classmethod
    def failed(cls, error: str) -> "AgentInitializationResult":
        return cls(success=False, error=error)


@dataclass
class AgentStatusInfo:
    """Snapshot returned by Agent.get_status()."""

    agent_id: str
    kind: AgentKind
    status: AgentStatus
    last_activity: datetime | None
    healthy: bool
    capabilities: AgentCapabilities | None = None
    metadata: dict = field(default_factory=dict)
