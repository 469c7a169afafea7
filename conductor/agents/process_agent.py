"""Agent backed by a long-lived child process speaking newline-delimited JSON."""

import asyncio
import json
import os
import shlex
from collections import deque
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import AsyncIterator

from ..config import DEFAULT_HEALTH_INTERVAL, DEFAULT_PROCESS_COMMAND
from ..errors import AgentTimeoutError, InitializationError, ProcessCrashError
from ..event_bus import IEventBus
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
    ResponseType,
    Topic,
    ToolCall,
    ToolExecutionResult,
)
from .base import AgentStateMachine, ToolDispatcher, tool_result_text
from .health import HealthMonitor
from .stream import StreamAccumulator

logger = get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT = 120.0
DEFAULT_IDLE_TIMEOUT = 30.0
DEFAULT_SHUTDOWN_TIMEOUT = 5.0
DEFAULT_MAX_TOOL_ROUNDS = 5
STARTUP_CHECK_DELAY = 0.1
STREAM_LIMIT = 16 * 1024 * 1024  # 16MB per output line


class ProcessAgent:
    """Supervises one child process per agent instance.

    Requests are written to the child's stdin as one JSON line; the response
    is read from stdout as stream frames until message_stop or until no line
    arrives for idle_timeout seconds. A crash before or during a request is
    recovered by one respawn and a retry; a second crash moves the agent to
    Error. A request that does not end cleanly recycles the process so the
    next request never reads leftovers of the previous one.
    """

    def __init__(
        self,
        dispatcher: ToolDispatcher,
        event_bus: IEventBus | None = None,
        default_command: list[str] | None = None,
        health_interval: float = DEFAULT_HEALTH_INTERVAL,
    ):
        self._dispatcher = dispatcher
        self._event_bus = event_bus
        self._default_command = default_command or shlex.split(DEFAULT_PROCESS_COMMAND)
        self._default_health_interval = health_interval

        self._state = AgentStateMachine(event_bus=event_bus)
        self._config: AgentConfiguration | None = None
        self._capabilities: AgentCapabilities | None = None
        self._lock = asyncio.Lock()
        self._monitor: HealthMonitor | None = None

        self._proc: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task | None = None
        self._stderr_tail: deque[str] = deque(maxlen=20)
        self.restart_count = 0

        self._command: list[str] = []
        self._env: dict[str, str] = {}
        self._request_timeout = DEFAULT_REQUEST_TIMEOUT
        self._idle_timeout = DEFAULT_IDLE_TIMEOUT
        self._shutdown_timeout = DEFAULT_SHUTDOWN_TIMEOUT
        self._max_tool_rounds = DEFAULT_MAX_TOOL_ROUNDS

    @property
    def agent_id(self) -> str:
        return self._config.agent_id if self._config else ""

    @property
    def kind(self) -> AgentKind:
        return AgentKind.PROCESS

    @property
    def status(self) -> AgentStatus:
        return self._state.status

    @property
    def process_id(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    # Lifecycle

    async def initialize(self, config: AgentConfiguration) -> AgentInitializationResult:
        """Spawn the child process and verify it stays up."""
        if self.status not in (AgentStatus.UNINITIALIZED, AgentStatus.ERROR):
            return AgentInitializationResult.failed(
                f"Agent {self.agent_id} is already initialized"
            )

        if self._monitor is not None:
            await self._monitor.stop()
        await self._discard_process()

        self._config = config
        self._state.agent_id = config.agent_id
        self._state.transition(AgentStatus.INITIALIZING)

        try:
            self._load_settings(config)
            await self._spawn()
            await asyncio.sleep(STARTUP_CHECK_DELAY)
            if self._proc.returncode is not None:
                raise InitializationError(
                    f"Process exited immediately with code {self._proc.returncode}"
                    + self._stderr_suffix()
                )
        except InitializationError as e:
            logger.error("Failed to initialize agent %s: %s", config.agent_id, e)
            await self._discard_process()
            self._state.transition(AgentStatus.ERROR)
            return AgentInitializationResult.failed(str(e))

        self._capabilities = self._build_capabilities(config)
        self._state.transition(AgentStatus.READY)

        interval = float(config.get_setting("health_check_interval", self._default_health_interval))
        self._monitor = HealthMonitor(config.agent_id, self.check_health, interval)
        self._monitor.start()
        return AgentInitializationResult.ok(self._capabilities)

    def _load_settings(self, config: AgentConfiguration) -> None:
        if not os.path.isdir(config.working_directory):
            raise InitializationError(
                f"Working directory does not exist: {config.working_directory}"
            )

        command = config.get_setting("command", self._default_command)
        if isinstance(command, str):
            command = shlex.split(command)
        if not command:
            raise InitializationError("Process command is empty")
        self._command = [str(part) for part in command]
        self._env = {str(k): str(v) for k, v in dict(config.get_setting("env", {})).items()}

        try:
            self._request_timeout = float(
                config.get_setting("request_timeout", DEFAULT_REQUEST_TIMEOUT)
            )
            self._idle_timeout = float(config.get_setting("idle_timeout", DEFAULT_IDLE_TIMEOUT))
            self._shutdown_timeout = float(
                config.get_setting("shutdown_timeout", DEFAULT_SHUTDOWN_TIMEOUT)
            )
            self._max_tool_rounds = int(
                config.get_setting("max_tool_rounds", DEFAULT_MAX_TOOL_ROUNDS)
            )
        except (TypeError, ValueError) as e:
            raise InitializationError(f"Invalid agent settings: {e}") from e

    def _build_capabilities(self, config: AgentConfiguration) -> AgentCapabilities:
        model = str(config.get_setting("model", ""))
        return AgentCapabilities(
            supports_streaming=True,
            supports_tools=True,
            supports_file_operations=True,
            max_concurrent_requests=1,
            max_tokens=200_000 if model.lower().startswith("claude") else 100_000,
            supported_models=[model] if model else [],
            tools=self._dispatcher.get_schemas(),
        )

    async def shutdown(self) -> None:
        """Stop health checks, then terminate the process (kill after a grace period)."""
        if self.status == AgentStatus.SHUTDOWN:
            return
        if self._monitor is not None:
            await self._monitor.stop()
        self._state.transition(AgentStatus.SHUTDOWN)
        await self._discard_process()
        logger.info("Agent %s shut down", self.agent_id)

    # Process management

    async def _spawn(self) -> None:
        env = os.environ.copy()
        env.update(self._env)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._config.working_directory,
                env=env,
                limit=STREAM_LIMIT,
            )
        except FileNotFoundError as e:
            raise InitializationError(f"Command not found: {self._command[0]}") from e
        except OSError as e:
            raise InitializationError(f"Failed to start process: {e}") from e

        self._stderr_tail.clear()
        self._stderr_task = asyncio.create_task(self._drain_stderr(self._proc))
        logger.info("Spawned process %s for agent %s", self._proc.pid, self.agent_id)

    async def _drain_stderr(self, proc: asyncio.subprocess.Process) -> None:
        while True:
            line = await proc.stderr.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            self._stderr_tail.append(text)
            logger.debug("[%s stderr] %s", self.agent_id, text)

    def _stderr_suffix(self) -> str:
        if not self._stderr_tail:
            return ""
        return f": {self._stderr_tail[-1]}"

    async def _discard_process(self) -> None:
        """Terminate the current process, killing it if it ignores SIGTERM."""
        proc, self._proc = self._proc, None
        if proc is None:
            return

        if proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), self._shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("Process %s did not exit in time, killing", proc.pid)
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            self._stderr_task = None

    async def _ensure_process(self) -> None:
        """Spawn lazily after a recycle; report a dead process as a crash."""
        if self.status == AgentStatus.SHUTDOWN:
            raise ProcessCrashError(f"Agent {self.agent_id} was shut down")
        if self._proc is None:
            try:
                await self._spawn()
            except InitializationError as e:
                raise ProcessCrashError(str(e)) from e
            return

        if self._proc.returncode is not None:
            code = self._proc.returncode
            suffix = self._stderr_suffix()
            await self._discard_process()
            raise ProcessCrashError(f"Process exited with code {code}{suffix}")

    async def _write(self, payload: dict) -> None:
        data = (json.dumps(payload, default=str) + "\n").encode("utf-8")
        try:
            self._proc.stdin.write(data)
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ProcessCrashError(f"Failed to write to process: {e}") from e

    async def _read_response(
        self, acc: StreamAccumulator, deadline: float
    ) -> AsyncIterator[str]:
        """Yield text deltas until message_stop; return early on idle cut-off."""
        loop = asyncio.get_running_loop()
        proc = self._proc

        while not acc.completed:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise AgentTimeoutError(
                    f"Request timed out after {self._request_timeout:g} seconds"
                )
            deadline_bound = remaining <= self._idle_timeout
            try:
                line = await asyncio.wait_for(
                    proc.stdout.readline(), min(remaining, self._idle_timeout)
                )
            except asyncio.TimeoutError:
                if deadline_bound:
                    raise AgentTimeoutError(
                        f"Request timed out after {self._request_timeout:g} seconds"
                    )
                logger.warning(
                    "Agent %s idle for %.1fs, surfacing partial response",
                    self.agent_id,
                    self._idle_timeout,
                )
                return
            except ValueError as e:
                # Line longer than the stream limit
                raise ProcessCrashError(f"Unreadable process output: {e}") from e

            if not line:
                try:
                    code = await asyncio.wait_for(proc.wait(), 1.0)
                except asyncio.TimeoutError:
                    code = None
                raise ProcessCrashError(
                    f"Process exited with code {code}{self._stderr_suffix()}"
                )

            delta = acc.feed_line(line.decode("utf-8", errors="replace"))
            if delta:
                yield delta

    async def _exchange(
        self, payload: dict, acc: StreamAccumulator, deadline: float
    ) -> AsyncIterator[str]:
        """Send payload and stream the reply, with one respawn-and-retry on crash.

        While a retry is still possible the deltas are held back, so a crash
        after partial output never shows the consumer text twice.
        """
        attempt = 0
        while True:
            held: list[str] = []
            try:
                await self._ensure_process()
                await self._write(payload)
                async for delta in self._read_response(acc, deadline):
                    if attempt >= 1:
                        yield delta
                    else:
                        held.append(delta)
            except ProcessCrashError as e:
                await self._discard_process()
                if attempt >= 1 or self.status == AgentStatus.SHUTDOWN:
                    raise
                attempt += 1
                self.restart_count += 1
                logger.warning(
                    "Process for agent %s crashed (%s), restarting", self.agent_id, e
                )
                acc.reset()
                continue

            for delta in held:
                yield delta
            return

    # Agent contract

    async def send_message(self, message: Message) -> AsyncIterator[AgentResponse]:
        """Stream text deltas, then one complete chunk with the full response."""
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
        payload = self._format_message(message)
        parts: list[str] = []
        rounds = 0
        clean = False

        try:
            while True:
                acc = StreamAccumulator()
                try:
                    async for delta in self._exchange(payload, acc, deadline):
                        self._state.touch()
                        self._publish_output(delta)
                        yield AgentResponse(message_id=message.id, content=delta)
                except AgentTimeoutError as e:
                    logger.warning("Agent %s: %s", self.agent_id, e)
                    yield AgentResponse.failure(message.id, str(e), error_type="timeout")
                    return
                except ProcessCrashError as e:
                    if self.status == AgentStatus.SHUTDOWN:
                        logger.info("Agent %s shut down mid-request", self.agent_id)
                        yield AgentResponse.failure(
                            message.id,
                            f"Agent {self.agent_id} was shut down",
                            error_type="shutdown",
                        )
                        return
                    logger.error("Agent %s failed after restart: %s", self.agent_id, e)
                    self._mark_error()
                    yield AgentResponse.failure(
                        message.id,
                        str(e),
                        error_type="process_crash",
                        restart_count=self.restart_count,
                    )
                    return

                parts.append(acc.text)
                if not acc.completed:
                    yield AgentResponse(
                        message_id=message.id,
                        content="".join(parts),
                        is_complete=True,
                        stop_reason="idle_timeout",
                        usage=acc.usage,
                        metadata={"partial": True},
                    )
                    return

                if not acc.tool_calls or rounds >= self._max_tool_rounds:
                    clean = True
                    yield AgentResponse(
                        message_id=message.id,
                        content="".join(parts),
                        is_complete=True,
                        tool_calls=acc.tool_calls,
                        stop_reason=acc.stop_reason,
                        usage=acc.usage,
                        metadata={"restart_count": self.restart_count},
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
                    result = await self._dispatcher.dispatch(
                        call, self._config.working_directory
                    )
                    yield AgentResponse(
                        message_id=message.id,
                        content=tool_result_text(result),
                        type=ResponseType.TOOL_RESULT,
                        tool_calls=[call],
                        metadata={"success": result.success},
                    )
                    results.append(
                        {
                            "tool_use_id": call.id,
                            "content": tool_result_text(result),
                            "is_error": not result.success,
                        }
                    )
                # Time spent on tools (including approval waits) is not request time
                deadline += loop.time() - started
                payload = {
                    "role": "tool",
                    "tool_results": results,
                    "session_id": message.session_id,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
        finally:
            if not clean:
                # Mid-response: recycle so the next request starts from a clean stream
                await self._discard_process()

    def _format_message(self, message: Message) -> dict:
        return {
            "role": message.role.value,
            "content": message.content,
            "timestamp": message.timestamp.isoformat(),
            "session_id": message.session_id,
            "message_id": message.id,
            "attachments": [asdict(a) for a in message.attachments],
        }

    def _publish_output(self, content: str) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(
                BusEvent(
                    topic=Topic.AGENT_OUTPUT,
                    payload={"agent_id": self.agent_id, "content": content},
                    source=self.agent_id,
                )
            )

    def _mark_error(self) -> None:
        if self.status != AgentStatus.SHUTDOWN:
            self._state.transition(AgentStatus.ERROR)

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

    async def check_health(self) -> bool:
        """Liveness probe; an idle process found dead is respawned once."""
        if self.status not in (AgentStatus.READY, AgentStatus.BUSY):
            return False
        if self._lock.locked():
            # A request owns the process; it handles crashes itself
            return self._proc is None or self._proc.returncode is None
        if self._proc is None or self._proc.returncode is None:
            return True

        async with self._lock:
            if self._proc is None or self._proc.returncode is None:
                return True
            logger.warning(
                "Process for agent %s exited with code %s while idle, respawning",
                self.agent_id,
                self._proc.returncode,
            )
            await self._discard_process()
            try:
                await self._spawn()
            except InitializationError as e:
                logger.error("Respawn for agent %s failed: %s", self.agent_id, e)
                self._mark_error()
                return False
            self.restart_count += 1
            return True

    def get_status(self) -> AgentStatusInfo:
        healthy = self.status in (AgentStatus.READY, AgentStatus.BUSY) and (
            self._monitor is None or self._monitor.healthy is not False
        )
        return AgentStatusInfo(
            agent_id=self.agent_id,
            kind=self.kind,
            status=self.status,
            last_activity=self._state.last_activity,
            healthy=healthy,
            capabilities=self._capabilities,
            metadata={
                "process_id": self.process_id,
                "restart_count": self.restart_count,
            },
        )
