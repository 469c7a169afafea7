"""Approval gate: decides whether a requested tool invocation may proceed."""

import asyncio
import re
from collections import deque
from typing import Protocol

from ..errors import InvalidPatternError
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import (
    ApprovalContext,
    ApprovalPolicy,
    ApprovalRecord,
    ApprovalRequest,
    ApprovalResult,
    ApprovalSettings,
    BusEvent,
    Topic,
)
from .heuristics import (
    DEFAULT_AUTO_APPROVED_TOOLS,
    DEFAULT_BLACKLIST,
    DEFAULT_WHITELIST,
    classify_command,
)

logger = get_logger(__name__)

REASON_POLICY_APPROVE = "Policy set to always approve"
REASON_POLICY_DENY = "Policy set to always deny"
REASON_YOLO = "YOLO Mode enabled - auto-approving all operations"
REASON_BLACKLIST = "Command matches blacklist pattern"
REASON_WHITELIST = "Command matches whitelist pattern"
REASON_NOT_DANGEROUS = "Operation not considered dangerous, auto-approved"
REASON_TOO_MANY_PENDING = "Too many pending approval requests"
REASON_CANCELLED = "Approval request cancelled"

HISTORY_LIMIT = 1000


class IApprovalGate(Protocol):
    """Policy engine consulted before every tool invocation."""

    async def check(self, context: ApprovalContext) -> ApprovalResult:
        """Decide on context, waiting for a human when the operation is dangerous."""
        ...

    def respond(
        self, request_id: str, approved: bool, reason: str | None = None
    ) -> bool:
        """Answer a pending request. False when the id is unknown."""
        ...

    def clear_cache(self) -> None:
        """Drop every cached decision."""
        ...


class ApprovalGate:
    """Approval gate with policy, YOLO mode, cache, patterns and human approval.

    Decision order, first decisive answer wins:

    1. policy override (never cached)
    2. YOLO mode (never cached)
    3. cached decision for the literal command string
    4. blacklist match -> deny
    5. whitelist match -> approve
    6. per-tool auto-approval -> approve
    7. dangerous-only mode off -> approve
    8. dangerous heuristic -> wait for a human, else approve

    All state lives on the instance and is only touched from the event loop;
    no read-modify-write spans an await.
    """

    def __init__(
        self,
        settings: ApprovalSettings | None = None,
        event_bus: IEventBus | None = None,
        policy: ApprovalPolicy = ApprovalPolicy.REQUIRE_USER_APPROVAL,
    ):
        self._settings = settings or ApprovalSettings()
        self._event_bus = event_bus
        self._policy = policy

        self._cache: dict[str, ApprovalResult] = {}
        self._whitelist: dict[str, re.Pattern] = {}
        self._blacklist: dict[str, re.Pattern] = {}
        self._auto_approved_tools: set[str] = set()
        self._pending: dict[str, ApprovalRequest] = {}
        self._history: deque[ApprovalRecord] = deque(maxlen=HISTORY_LIMIT)

    # Configuration

    @property
    def settings(self) -> ApprovalSettings:
        return self._settings

    def configure(self, settings: ApprovalSettings) -> None:
        """Replace gate settings."""
        self._settings = settings
        logger.info(
            "Approval settings configured: yolo=%s dangerous_only=%s timeout=%s",
            settings.yolo_mode,
            settings.dangerous_only,
            settings.approval_timeout,
        )

    @property
    def policy(self) -> ApprovalPolicy:
        return self._policy

    def set_policy(self, policy: ApprovalPolicy) -> None:
        self._policy = policy
        logger.info("Approval policy set to %s", policy.value)

    def install_defaults(self) -> None:
        """Install the default whitelist, blacklist and auto-approved tools."""
        for pattern in DEFAULT_WHITELIST:
            self.add_whitelist_pattern(pattern)
        for pattern in DEFAULT_BLACKLIST:
            self.add_blacklist_pattern(pattern)
        for tool_name in DEFAULT_AUTO_APPROVED_TOOLS:
            self.set_tool_auto_approval(tool_name, True)

    def add_whitelist_pattern(self, pattern: str) -> None:
        self._whitelist[pattern] = self._compile(pattern)

    def add_blacklist_pattern(self, pattern: str) -> None:
        self._blacklist[pattern] = self._compile(pattern)

    def remove_whitelist_pattern(self, pattern: str) -> bool:
        return self._whitelist.pop(pattern, None) is not None

    def remove_blacklist_pattern(self, pattern: str) -> bool:
        return self._blacklist.pop(pattern, None) is not None

    @property
    def whitelist(self) -> list[str]:
        return list(self._whitelist)

    @property
    def blacklist(self) -> list[str]:
        return list(self._blacklist)

    def set_tool_auto_approval(self, tool_name: str, enabled: bool) -> None:
        if enabled:
            self._auto_approved_tools.add(tool_name)
        else:
            self._auto_approved_tools.discard(tool_name)

    def is_tool_auto_approved(self, tool_name: str) -> bool:
        return tool_name in self._auto_approved_tools

    @staticmethod
    def _compile(pattern: str) -> re.Pattern:
        if not pattern:
            raise InvalidPatternError("Pattern cannot be empty")
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise InvalidPatternError(f"Invalid regex pattern '{pattern}': {e}") from e

    # Cache / pending / history

    def clear_cache(self) -> None:
        count = len(self._cache)
        self._cache.clear()
        logger.info("Approval cache cleared (%s entries)", count)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def get_pending_requests(self) -> list[ApprovalRequest]:
        return list(self._pending.values())

    def get_history(
        self, agent_id: str | None = None, session_id: str | None = None
    ) -> list[ApprovalRecord]:
        """Decisions taken so far, oldest first."""
        return [
            record
            for record in self._history
            if (agent_id is None or record.context.agent_id == agent_id)
            and (session_id is None or record.context.session_id == session_id)
        ]

    # Decisions

    async def check(self, context: ApprovalContext) -> ApprovalResult:
        """Decide on context, waiting for a human when the operation is dangerous."""
        logger.debug(
            "Approval requested for tool %s: %s", context.tool_name, context.command
        )

        if self._policy == ApprovalPolicy.ALWAYS_APPROVE:
            return self._decide(context, ApprovalResult(True, REASON_POLICY_APPROVE))
        if self._policy == ApprovalPolicy.ALWAYS_DENY:
            return self._decide(context, ApprovalResult(False, REASON_POLICY_DENY))

        if self._settings.yolo_mode:
            logger.warning(
                "YOLO mode: auto-approved %s: %s", context.tool_name, context.command
            )
            return self._decide(context, ApprovalResult(True, REASON_YOLO))

        cached = self._cache.get(context.command)
        if cached is not None:
            logger.debug("Using cached approval result for: %s", context.command)
            self._history.append(ApprovalRecord(context=context, result=cached))
            return cached

        if any(p.search(context.command) for p in self._blacklist.values()):
            logger.warning("Command blacklisted: %s", context.command)
            return self._decide(
                context, ApprovalResult(False, REASON_BLACKLIST, cacheable=True)
            )

        if any(p.search(context.command) for p in self._whitelist.values()):
            return self._decide(
                context, ApprovalResult(True, REASON_WHITELIST, cacheable=True)
            )

        if context.tool_name in self._auto_approved_tools:
            return self._decide(
                context,
                ApprovalResult(
                    True,
                    f"Tool '{context.tool_name}' is configured for auto-approval",
                    cacheable=True,
                ),
            )

        if not self._settings.dangerous_only:
            return self._decide(
                context, ApprovalResult(True, REASON_NOT_DANGEROUS, cacheable=True)
            )

        category = classify_command(context.command)
        if category is None:
            return self._decide(
                context, ApprovalResult(True, REASON_NOT_DANGEROUS, cacheable=True)
            )

        logger.info(
            "Dangerous operation (%s) needs approval: %s", category, context.command
        )
        return await self._request_human_approval(context, category)

    async def _request_human_approval(
        self, context: ApprovalContext, category: str
    ) -> ApprovalResult:
        if len(self._pending) >= self._settings.max_pending_requests:
            return self._decide(context, ApprovalResult(False, REASON_TOO_MANY_PENDING))

        timeout = self._settings.approval_timeout
        request = ApprovalRequest(
            context=context,
            future=asyncio.get_running_loop().create_future(),
            timeout=timeout,
        )
        self._pending[request.id] = request
        self._publish(
            Topic.APPROVAL_REQUESTED,
            {
                "request_id": request.id,
                "category": category,
                "timeout": timeout,
                "context": _context_payload(context),
            },
        )

        try:
            result = await asyncio.wait_for(request.future, timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Approval request %s timed out",
                request.id,
                extra={"request_id": request.id, "agent_id": context.agent_id},
            )
            result = ApprovalResult(
                False,
                f"Approval request timed out after {timeout:g} seconds",
                request_id=request.id,
            )
        except asyncio.CancelledError:
            self._decide(context, ApprovalResult(False, REASON_CANCELLED, request_id=request.id))
            raise
        finally:
            self._pending.pop(request.id, None)

        return self._decide(context, result)

    def respond(
        self,
        request_id: str,
        approved: bool,
        reason: str | None = None,
        remember: bool = True,
    ) -> bool:
        """Answer a pending request.

        With remember=True the decision is cached for the command so the same
        command does not need a second human answer.
        """
        request = self._pending.get(request_id)
        if request is None or request.future.done():
            logger.warning("Approval response for unknown request ID: %s", request_id)
            return False

        request.future.set_result(
            ApprovalResult(
                approved,
                reason or ("Approved by user" if approved else "Denied by user"),
                cacheable=remember,
                request_id=request_id,
            )
        )
        return True

    def _decide(self, context: ApprovalContext, result: ApprovalResult) -> ApprovalResult:
        if result.cacheable:
            self._cache[context.command] = result
        self._history.append(ApprovalRecord(context=context, result=result))
        self._publish(
            Topic.APPROVAL_RESOLVED,
            {
                "request_id": result.request_id,
                "approved": result.approved,
                "reason": result.reason,
                "cached": result.cacheable,
                "context": _context_payload(context),
            },
        )
        return result

    def _publish(self, topic: Topic, payload: dict) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(BusEvent(topic=topic, payload=payload, source="approval_gate"))


def _context_payload(context: ApprovalContext) -> dict:
    return {
        "tool_name": context.tool_name,
        "command": context.command,
        "agent_id": context.agent_id,
        "session_id": context.session_id,
        "working_directory": context.working_directory,
    }
