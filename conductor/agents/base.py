"""Agent contract and the components every agent kind is composed from."""

import json
from contextlib import aclosing
from datetime import datetime, timezone
from typing import AsyncIterator, Protocol

from ..approval import IApprovalGate
from ..errors import ApprovalDeniedError, InvalidStatusTransitionError
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import (
    AgentConfiguration,
    AgentInitializationResult,
    AgentKind,
    AgentResponse,
    AgentStatus,
    AgentStatusInfo,
    ApprovalContext,
    BusEvent,
    ExecutionContext,
    Message,
    ResponseType,
    Topic,
    ToolCall,
    ToolExecutionResult,
)
from ..tools import IToolExecutor

logger = get_logger(__name__)


class IAgent(Protocol):
    """A stateful worker that turns a message into a response."""

    @property
    def agent_id(self) -> str:
        ...

    @property
    def kind(self) -> AgentKind:
        ...

    @property
    def status(self) -> AgentStatus:
        ...

    async def initialize(self, config: AgentConfiguration) -> AgentInitializationResult:
        """Bring the agent to Ready. Failures are returned, not raised."""
        ...

    def send_message(self, message: Message) -> AsyncIterator[AgentResponse]:
        """Stream response chunks. The last chunk has is_complete=True."""
        ...

    async def execute_tool(self, tool_call: ToolCall) -> ToolExecutionResult:
        """Run one tool call through the approval gate and tool executor."""
        ...

    async def check_health(self) -> bool:
        """Liveness probe."""
        ...

    def get_status(self) -> AgentStatusInfo:
        """Status snapshot."""
        ...

    async def shutdown(self) -> None:
        """Release resources. Terminal."""
        ...


# Legal transitions besides "any -> ERROR" and "any -> SHUTDOWN"
_TRANSITIONS: dict[AgentStatus, set[AgentStatus]] = {
    AgentStatus.UNINITIALIZED: {AgentStatus.INITIALIZING},
    AgentStatus.INITIALIZING: {AgentStatus.READY},
    AgentStatus.READY: {AgentStatus.BUSY},
    AgentStatus.BUSY: {AgentStatus.READY},
    AgentStatus.ERROR: {AgentStatus.INITIALIZING},
    AgentStatus.SHUTDOWN: set(),
}


class AgentStateMachine:
    """Owns one agent's status; transitions are the only way to change it."""

    def __init__(self, agent_id: str = "", event_bus: IEventBus | None = None):
        self.agent_id = agent_id
        self._event_bus = event_bus
        self._status = AgentStatus.UNINITIALIZED
        self.last_activity: datetime | None = None

    @property
    def status(self) -> AgentStatus:
        return self._status

    def can_transition(self, new_status: AgentStatus) -> bool:
        if self._status == AgentStatus.SHUTDOWN:
            return False
        if new_status in (AgentStatus.ERROR, AgentStatus.SHUTDOWN):
            return True
        return new_status in _TRANSITIONS[self._status]

    def transition(self, new_status: AgentStatus) -> None:
        """Move to new_status and publish the change. Same-state is a no-op."""
        old_status = self._status
        if old_status == new_status:
            return
        if not self.can_transition(new_status):
            raise InvalidStatusTransitionError(
                f"Agent {self.agent_id}: illegal transition "
                f"{old_status.value} -> {new_status.value}"
            )

        self._status = new_status
        self.touch()
        logger.info(
            "Agent %s status %s -> %s", self.agent_id, old_status.value, new_status.value
        )
        if self._event_bus is not None:
            self._event_bus.publish(
                BusEvent(
                    topic=Topic.AGENT_STATUS_CHANGED,
                    payload={
                        "agent_id": self.agent_id,
                        "old_status": old_status.value,
                        "new_status": new_status.value,
                    },
                    source=self.agent_id or "agent",
                )
            )

    def touch(self) -> None:
        self.last_activity = datetime.now(timezone.utc)


def describe_command(tool_call: ToolCall) -> str:
    """Literal command string used for approval decisions and caching."""
    command = tool_call.parameters.get("command")
    if isinstance(command, str) and command.strip():
        return command.strip()
    return f"{tool_call.name} {json.dumps(tool_call.parameters, sort_keys=True, default=str)}"


class ToolDispatcher:
    """Routes agent tool calls through the approval gate, then the executor."""

    def __init__(
        self,
        executor: IToolExecutor,
        approval_gate: IApprovalGate,
    ):
        self._executor = executor
        self._gate = approval_gate

    @property
    def executor(self) -> IToolExecutor:
        return self._executor

    def get_schemas(self) -> list[dict]:
        return self._executor.get_schemas()

    async def require_approval(
        self, tool_call: ToolCall, working_directory: str
    ) -> None:
        """Raise ApprovalDeniedError unless the gate approves tool_call."""
        context = ApprovalContext(
            tool_name=tool_call.name,
            command=describe_command(tool_call),
            agent_id=tool_call.agent_id,
            session_id=tool_call.session_id,
            working_directory=working_directory,
            parameters=dict(tool_call.parameters),
        )
        decision = await self._gate.check(context)
        if not decision.approved:
            raise ApprovalDeniedError(decision.reason)

    async def dispatch(
        self,
        tool_call: ToolCall,
        working_directory: str,
        cancel_event=None,
        timeout: float | None = None,
    ) -> ToolExecutionResult:
        """Approve and execute tool_call; denial becomes a failed result."""
        try:
            await self.require_approval(tool_call, working_directory)
        except ApprovalDeniedError as e:
            logger.info("Tool call %s denied: %s", tool_call.name, e.reason)
            return ToolExecutionResult.failed(
                f"Approval denied: {e.reason}", approval_denied=True
            )

        context = ExecutionContext(
            agent_id=tool_call.agent_id,
            session_id=tool_call.session_id,
            working_directory=working_directory,
            cancel_event=cancel_event,
        )
        return await self._executor.execute(
            tool_call.name, tool_call.parameters, context, timeout=timeout
        )


def tool_result_text(result: ToolExecutionResult) -> str:
    """Text fed back to the model for a tool result."""
    if result.success:
        return result.output
    return f"Error: {result.error}"


async def collect_response(stream: AsyncIterator[AgentResponse]) -> AgentResponse:
    """Consume a response stream and return its final chunk.

    Streams that end without a complete chunk are folded into one from the
    text deltas seen so far.
    """
    parts: list[str] = []
    last: AgentResponse | None = None
    final: AgentResponse | None = None
    async with aclosing(stream):
        async for chunk in stream:
            last = chunk
            if chunk.is_complete:
                final = chunk
            elif chunk.type == ResponseType.TEXT:
                parts.append(chunk.content)

    if final is not None:
        return final
    return AgentResponse(
        message_id=last.message_id if last else "",
        content="".join(parts),
        is_complete=True,
        metadata={"partial": True},
    )
