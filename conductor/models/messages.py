"""Message and response chunk models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .tools import ToolCall


class MessageRole(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class Attachment:
    """File or blob attached to a message."""

    name: str
    content_type: str = "text/plain"
    data: str | None = None  # text or base64
    url: str | None = None


@dataclass(frozen=True)
class Message:
    """A message sent to an agent. Immutable once built."""

    role: MessageRole
    content: str
    session_id: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attachments: tuple[Attachment, ...] = ()
    metadata: dict = field(default_factory=dict)


class ResponseType(str, Enum):
    """Kind of response chunk."""

    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ERROR = "error"


@dataclass
class TokenUsage:
    """Token accounting reported by the backend."""

    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class AgentResponse:
    """One chunk of an agent response stream.

    Incremental chunks have is_complete=False and carry a text delta. The
    final chunk has is_complete=True and carries the full response text.
    """

    message_id: str
    content: str = ""
    type: ResponseType = ResponseType.TEXT
    is_complete: bool = False
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None
    usage: TokenUsage | None = None
    error: str | None = None
    metadata: dict = field(default_factory=dict)

    @classmethod
    def failure(cls, message_id: str, error: str, **metadata) -> "AgentResponse":
        """Build a terminal error chunk."""
        return cls(
            message_id=message_id,
            content=error,
            type=ResponseType.ERROR,
            is_complete=True,
            error=error,
            metadata=metadata,
        )
