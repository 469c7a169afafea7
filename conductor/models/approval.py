"""Approval gate data models."""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ApprovalPolicy(str, Enum):
    """Global override applied before any other rule."""

    REQUIRE_USER_APPROVAL = "require_user_approval"
    ALWAYS_APPROVE = "always_approve"
    ALWAYS_DENY = "always_deny"


@dataclass(frozen=True)
class ApprovalSettings:
    """Tunable gate behaviour."""

    yolo_mode: bool = False
    dangerous_only: bool = True
    approval_timeout: float = 300.0  # seconds
    max_pending_requests: int = 10


@dataclass(frozen=True)
class ApprovalContext:
    """What is being asked for, by whom and where."""

    tool_name: str
    command: str
    agent_id: str = ""
    session_id: str = ""
    working_directory: str = ""
    parameters: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ApprovalResult:
    """Gate decision."""

    approved: bool
    reason: str
    cacheable: bool = False
    request_id: str | None = None
    decided_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ApprovalRequest:
    """A dangerous operation waiting for a human response."""

    context: ApprovalContext
    future: asyncio.Future = field(repr=False, compare=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    timeout: float = 300.0


@dataclass(frozen=True)
class ApprovalRecord:
    """Audit entry: one context and the decision taken for it."""

    context: ApprovalContext
    result: ApprovalResult
