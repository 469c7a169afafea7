"""Agent backed by a remote model provider."""

import asyncio
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Mapping

from ..errors import AgentTimeoutError, InitializationError
from ..event_bus import IEventBus
from ..llm import ILLMProvider, create_provider
from ..logging_config import get_logger
from ..models import (
    AgentCapabilities,
    AgentConfiguration,
    AgentInitializationResult,
    AgentKind,
    AgentResponse,
    AgentStatus,
    AgentStatusInfo,
    BusEvent,
    Message,
    MessageRole,
    ResponseType,
    Topic,
    ToolCall,
    ToolExecutionResult,
)
from .base import AgentStateMachine, ToolDispatcher, tool_result_text
from .stream import StreamAccumulator

logger = get_logger(__name__)

ProviderFactory = Callable[[Mapping[str, Any]], ILLMProvider]

DEFAULT_REQUEST_TIMEOUT = 300.0
DEFAULT_MAX_TOOL_ROUNDS = 5
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4096


class ProviderAgent:
    """Calls a remote provider and streams the reply as response chunks.

    Conversation history is kept per session id in block form. Tool calls
    requested by the model go through the same dispatcher as every other
    agent; the provider never runs tools itself.
    """

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        event_bus: IEventBus | None = None,
        provider_factory: ProviderFactory = create_provider,
    ):
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self._provider_factory = provider_factory

        self._state = AgentStateMachine(event_bus=event_bus)
        self._config: AgentConfiguration | None = None
        self._capabilities: AgentCapabilities | None = None
        self._provider: ILLMProvider | None = None
        self._lock = asyncio.Lock()
        self._histories: dict[str, list[dict]] = {}

        self._system_prompt: str | None = None
        self._temperature: float | None = DEFAULT_TEMPERATURE
        self._max_tokens = DEFAULT_MAX_TOKENS
        self._max_tool_rounds = DEFAULT_MAX_TOOL_ROUNDS
        self._request_timeout = DEFAULT_REQUEST_TIMEOUT
        self._enable_tools = True

    @property
    def agent_id(self) -> str:
        return self._config.agent_id if self._config else ""

    @property
    def kind(self) -> AgentKind:
        return AgentKind.PROVIDER

    @property
    def status(self) -> AgentStatus:
        return self._state.status

    @property
    def provider(self) -> ILLMProvider | None:
        return self._provider

    async def initialize(self, config: AgentConfiguration) -> AgentInitializationResult:
        """Resolve the provider from settings; unknown providers fail hard."""
        if self.status not in (AgentStatus.UNINITIALIZED, AgentStatus.ERROR):
            return AgentInitializationResult.failed(
                f"Agent {self.agent_id} is already initialized"
            )

        self._config = config
        self._state.agent_id = config.agent_id
        self._state.transition(AgentStatus.INITIALIZING)

        try:
            self._provider = self._provider_factory(config.settings)
            self._system_prompt = config.get_setting("system_prompt")
            self._temperature = float(config.get_setting("temperature", DEFAULT_TEMPERATURE))
            self._max_tokens = int(config.get_setting("max_tokens", DEFAULT_MAX_TOKENS))
            self._max_tool_rounds = int(
                config.get_setting("max_tool_rounds", DEFAULT_MAX_TOOL_ROUNDS)
            )
            self._request_timeout = float(
                config.get_setting("request_timeout", DEFAULT_REQUEST_TIMEOUT)
            )
            self._enable_tools = bool(config.get_setting("enable_tools", True))
        except InitializationError as e:
            logger.error("Failed to initialize agent %s: %s", config.agent_id, e)
            self._state.transition(AgentStatus.ERROR)
            return AgentInitializationResult.failed(str(e))
        except (TypeError, ValueError) as e:
            self._state.transition(AgentStatus.ERROR)
            return AgentInitializationResult.failed(f"Invalid agent settings: {e}")

        model = str(config.get_setting("model", ""))
        self._capabilities = AgentCapabilities(
            supports_streaming=True,
            supports_tools=self._enable_tools,
            supports_file_operations=self._enable_tools,
            max_concurrent_requests=1,
            max_tokens=200_000 if model.lower().startswith("claude") or not model else 100_000,
            supported_models=[model] if model else [],
            tools=self._dispatcher.get_schemas() if self._enable_tools else [],
        )
        self._state.transition(AgentStatus.READY)
        return AgentInitializationResult.ok(self._capabilities)

    async def shutdown(self) -> None:
        if self.status == AgentStatus.SHUTDOWN:
            return
        self._state.transition(AgentStatus.SHUTDOWN)
        close = getattr(self._provider, "close", None)
        if close is not None:
            await close()
        self._histories.clear()
        logger.info("Agent %s shut down", self.agent_id)

    async def check_health(self) -> bool:
        return self._provider is not None and self.status in (
            AgentStatus.READY,
            AgentStatus.BUSY,
        )

    def get_status(self) -> AgentStatusInfo:
        return AgentStatusInfo(
            agent_id=self.agent_id,
            kind=self.kind,
            status=self.status,
            last_activity=self._state.last_activity,
            healthy=self.status in (AgentStatus.READY, AgentStatus.BUSY),
            capabilities=self._capabilities,
            metadata={"provider": getattr(self._provider, "name", None)},
        )

    def clear_history(self, session_id: str | None = None) -> None:
        if session_id is None:
            self._histories.clear()
        else:
            self._histories.pop(session_id, None)

    # Messaging

    async def send_message(self, message: Message) -> AsyncIterator[AgentResponse]:
        """Stream text deltas and tool activity, then one complete chunk."""
        if self.status not in (AgentStatus.READY, AgentStatus.BUSY):
            yield AgentResponse.failure(
                message.id, f"Agent {self.agent_id} is not ready (status: {self.status.value})"
            )
            return

        async with self._lock:
            if self.status != AgentStatus.READY:
                yield AgentResponse.failure(
                    message.id,
                    f"Agent {self.agent_id} is not ready (status: {self.status.value})",
                )
                return

            self._state.transition(AgentStatus.BUSY)
            try:
                async for chunk in self._handle_message(message):
                    yield chunk
            finally:
                if self.status == AgentStatus.BUSY:
                    self._state.transition(AgentStatus.READY)

    async def _handle_message(self, message: Message) -> AsyncIterator[AgentResponse]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._request_timeout
        history = self._histories.setdefault(message.session_id, [])
        history.append(self._to_turn(message))
        tools = self._dispatcher.get_schemas() if self._enable_tools else None
        parts: list[str] = []
        rounds = 0

        while True:
            acc = StreamAccumulator()
            try:
                async for delta in self._stream(history, tools, acc, deadline):
                    self._state.touch()
                    self._publish_output(delta)
                    yield AgentResponse(message_id=message.id, content=delta)
            except AgentTimeoutError as e:
                yield AgentResponse.failure(message.id, str(e), error_type="timeout")
                return
            except RuntimeError as e:
                logger.error("Provider error for agent %s: %s", self.agent_id, e)
                yield AgentResponse.failure(message.id, str(e), error_type="provider")
                return

            parts.append(acc.text)
            turn = self._assistant_turn(acc)
            if turn is not None:
                history.append(turn)

            if not acc.tool_calls or rounds >= self._max_tool_rounds:
                yield AgentResponse(
                    message_id=acc.message_id or message.id,
                    content="".join(parts),
                    is_complete=True,
                    tool_calls=acc.tool_calls,
                    stop_reason=acc.stop_reason,
                    usage=acc.usage,
                    metadata={"provider": getattr(self._provider, "name", None)},
                )
                return

            rounds += 1
            started = loop.time()
            results = []
            for call in acc.tool_calls:
                call = replace(call, agent_id=self.agent_id, session_id=message.session_id)
                yield AgentResponse(
                    message_id=message.id,
                    content=call.name,
                    type=ResponseType.TOOL_CALL,
                    tool_calls=[call],
                )
                result = await self._dispatcher.dispatch(call, self._config.working_directory)
                yield AgentResponse(
                    message_id=message.id,
                    content=tool_result_text(result),
                    type=ResponseType.TOOL_RESULT,
                    tool_calls=[call],
                    metadata={"success": result.success},
                )
                results.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": tool_result_text(result),
                        "is_error": not result.success,
                    }
                )
            history.append({"role": "user", "content": results})
            deadline += loop.time() - started

    async def _stream(
        self,
        history: list[dict],
        tools: list[dict] | None,
        acc: StreamAccumulator,
        deadline: float,
    ) -> AsyncIterator[str]:
        loop = asyncio.get_running_loop()
        frames = self._provider.stream(
            list(history),
            system=self._system_prompt,
            tools=tools,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        ).__aiter__()
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise AgentTimeoutError(
                        f"Request timed out after {self._request_timeout:g} seconds"
                    )
                try:
                    frame = await asyncio.wait_for(anext(frames), remaining)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError:
                    raise AgentTimeoutError(
                        f"Request timed out after {self._request_timeout:g} seconds"
                    )
                delta = acc.feed(frame)
                if delta:
                    yield delta
        finally:
            aclose = getattr(frames, "aclose", None)
            if aclose is not None:
                await aclose()

    @staticmethod
    def _to_turn(message: Message) -> dict:
        """Convert an outbound message into a block-style turn."""
        role = "assistant" if message.role == MessageRole.ASSISTANT else "user"
        blocks: list[dict] = []
        if message.role == MessageRole.SYSTEM:
            blocks.append({"type": "text", "text": f"[system] {message.content}"})
        else:
            blocks.append({"type": "text", "text": message.content})
        for attachment in message.attachments:
            if attachment.data and attachment.content_type.startswith("text/"):
                blocks.append(
                    {"type": "text", "text": f"[{attachment.name}]\n{attachment.data}"}
                )
            elif attachment.url:
                blocks.append({"type": "text", "text": f"[{attachment.name}] {attachment.url}"})
        return {"role": role, "content": blocks}

    @staticmethod
    def _assistant_turn(acc: StreamAccumulator) -> dict | None:
        """Block-style turn for the reply, or None when the reply was empty."""
        blocks: list[dict] = []
        if acc.text:
            blocks.append({"type": "text", "text": acc.text})
        for call in acc.tool_calls:
            blocks.append(
                {"type": "tool_use", "id": call.id, "name": call.name, "input": call.parameters}
            )
        if not blocks:
            return None
        return {"role": "assistant", "content": blocks}

    def _publish_output(self, content: str) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(
                BusEvent(
                    topic=Topic.AGENT_OUTPUT,
                    payload={"agent_id": self.agent_id, "content": content},
                    source=self.agent_id,
                )
            )

    async def execute_tool(
        self, tool_call: ToolCall, cancel_event: asyncio.Event | None = None
    ) -> ToolExecutionResult:
        """Run a tool call directly, serialized with message handling."""
        if self.status not in (AgentStatus.READY, AgentStatus.BUSY):
            return ToolExecutionResult.failed(
                f"Agent {self.agent_id} is not ready (status: {self.status.value})"
            )

        async with self._lock:
            if self.status != AgentStatus.READY:
                return ToolExecutionResult.failed(
                    f"Agent {self.agent_id} is not ready (status: {self.status.value})"
                )
            self._state.transition(AgentStatus.BUSY)
            try:
                return await self._dispatcher.dispatch(
                    replace(tool_call, agent_id=self.agent_id),
                    self._config.working_directory,
                    cancel_event=cancel_event,
                )
            finally:
                if self.status == AgentStatus.BUSY:
                    self._state.transition(AgentStatus.READY)
