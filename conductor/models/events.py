"""Event notifier messages."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Topic(str, Enum):
    """EventBus topics."""

    AGENT_STATUS_CHANGED = "agent_status_changed"
    AGENT_OUTPUT = "agent_output"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RESOLVED = "approval_resolved"
    TOOL_EXECUTED = "tool_executed"
    STEP_COMPLETED = "step_completed"
    ORCHESTRATION_STARTED = "orchestration_started"
    ORCHESTRATION_COMPLETED = "orchestration_completed"


@dataclass
class BusEvent:
    """An event published through the EventBus. Payload is JSON-compatible."""

    topic: Topic
    payload: dict
    source: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
