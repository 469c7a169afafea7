"""Tool registry and executor."""

import asyncio
import time
from typing import Any, Protocol

from ..config import DEFAULT_TOOL_TIMEOUT
from ..errors import ToolExecutionError, ValidationError
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import (
    BusEvent,
    ExecutionContext,
    Topic,
    ToolExecutionResult,
    ValidationResult,
)

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Tool execution was cancelled"

# How long a timed-out handler gets to unwind after cancel()
_CANCEL_GRACE = 1.0


class IToolHandler(Protocol):
    """A named side-effecting operation."""

    name: str
    description: str
    parameters_schema: dict

    def validate(self, parameters: dict[str, Any]) -> ValidationResult:
        """Check parameters before execution."""
        ...

    async def execute(
        self, parameters: dict[str, Any], context: ExecutionContext
    ) -> ToolExecutionResult:
        """Run the tool. Raise ToolExecutionError for domain failures."""
        ...


class IToolExecutor(Protocol):
    """Maps tool names to handlers and runs them under timeout/cancellation."""

    def register(self, name: str, handler: IToolHandler) -> None:
        """Register handler under name; later registrations overwrite."""
        ...

    def has_tool(self, name: str) -> bool:
        """Whether a handler is registered for name."""
        ...

    def get_schemas(self) -> list[dict]:
        """Tool schemas for every registered handler."""
        ...

    async def execute(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        context: ExecutionContext,
        timeout: float | None = None,
    ) -> ToolExecutionResult:
        """Execute a named tool. Never raises for expected failures."""
        ...


class ToolExecutor:
    """Tool registry and executor."""

    def __init__(
        self,
        default_timeout: float = DEFAULT_TOOL_TIMEOUT,
        event_bus: IEventBus | None = None,
    ):
        self._default_timeout = default_timeout
        self._event_bus = event_bus
        self._handlers: dict[str, IToolHandler] = {}

    def register(self, name: str, handler: IToolHandler) -> None:
        """Register handler under name; later registrations overwrite."""
        if not name or not name.strip():
            raise ValueError("Tool name cannot be null or empty")
        if handler is None:
            raise ValueError("Tool handler cannot be None")

        if name in self._handlers:
            logger.warning("Overwriting handler for tool '%s'", name)
        self._handlers[name] = handler
        logger.debug("Registered tool '%s'", name)

    def unregister(self, name: str) -> bool:
        """Remove a handler. Returns False when none was registered."""
        return self._handlers.pop(name, None) is not None

    def has_tool(self, name: str) -> bool:
        return name in self._handlers

    def list_tools(self) -> list[str]:
        return sorted(self._handlers)

    def get_schemas(self) -> list[dict]:
        """Tool schemas in {name, description, input_schema} form."""
        return [
            {
                "name": name,
                "description": handler.description,
                "input_schema": handler.parameters_schema,
            }
            for name, handler in sorted(self._handlers.items())
        ]

    async def execute(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        context: ExecutionContext,
        timeout: float | None = None,
    ) -> ToolExecutionResult:
        """Execute a named tool with validation, timeout and cancellation."""
        result = await self._execute(tool_name, parameters, context, timeout)
        if self._event_bus is not None:
            self._event_bus.publish(
                BusEvent(
                    topic=Topic.TOOL_EXECUTED,
                    payload={
                        "tool_name": tool_name,
                        "agent_id": context.agent_id,
                        "session_id": context.session_id,
                        "success": result.success,
                        "error": result.error,
                        "elapsed": result.elapsed,
                    },
                    source="tool_executor",
                )
            )
        return result

    async def _execute(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        context: ExecutionContext,
        timeout: float | None,
    ) -> ToolExecutionResult:
        handler = self._handlers.get(tool_name)
        if handler is None:
            logger.warning("No handler found for tool '%s'", tool_name)
            return ToolExecutionResult.failed(
                f"No handler found for tool '{tool_name}'", elapsed=0.0
            )

        started = time.monotonic()

        def elapsed() -> float:
            return time.monotonic() - started

        try:
            validation = handler.validate(parameters)
        except ValidationError as e:
            return ToolExecutionResult.failed(
                f"Parameter validation failed: {e}", elapsed=elapsed()
            )
        except Exception as e:
            logger.error("Validation of '%s' raised: %s", tool_name, e, exc_info=True)
            return ToolExecutionResult.failed(f"Unexpected error: {e}", elapsed=elapsed())

        if not validation.is_valid:
            return ToolExecutionResult.failed(
                f"Parameter validation failed: {', '.join(validation.errors)}",
                elapsed=elapsed(),
            )

        if context.cancelled:
            return ToolExecutionResult.failed(CANCELLED_MESSAGE, elapsed=elapsed())

        limit = self._default_timeout if timeout is None else timeout
        task = asyncio.ensure_future(handler.execute(parameters, context))
        waiters: set[asyncio.Future] = {task}
        cancel_waiter = None
        if context.cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(context.cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=limit, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task not in done:
            task.cancel()
            await asyncio.wait({task}, timeout=_CANCEL_GRACE)
            if cancel_waiter is not None and cancel_waiter in done:
                logger.info("Tool '%s' cancelled", tool_name)
                return ToolExecutionResult.failed(CANCELLED_MESSAGE, elapsed=elapsed())
            logger.warning("Tool '%s' timed out after %.1fs", tool_name, limit)
            return ToolExecutionResult.failed(
                f"Tool execution timed out after {limit:.1f} seconds",
                elapsed=elapsed(),
            )

        try:
            result = task.result()
        except asyncio.CancelledError:
            return ToolExecutionResult.failed(CANCELLED_MESSAGE, elapsed=elapsed())
        except ToolExecutionError as e:
            return ToolExecutionResult.failed(str(e), elapsed=elapsed())
        except Exception as e:
            logger.error("Tool '%s' failed: %s", tool_name, e, exc_info=True)
            return ToolExecutionResult.failed(f"Unexpected error: {e}", elapsed=elapsed())

        return result.with_elapsed(elapsed())
