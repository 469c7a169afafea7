"""Tests for ToolExecutor."""

import asyncio

import pytest

from conductor.errors import ToolExecutionError, ValidationError
from conductor.models import (
    BusEvent,
    ExecutionContext,
    Topic,
    ToolExecutionResult,
    ValidationResult,
)
from conductor.tools import CANCELLED_MESSAGE, ToolExecutor


class EchoHandler:
    name = "echo"
    description = "Echo the text parameter"
    parameters_schema = {"type": "object", "properties": {"text": {"type": "string"}}}

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def validate(self, parameters):
        if "text" not in parameters:
            return ValidationResult.failure("'text' is required")
        return ValidationResult.success()

    async def execute(self, parameters, context):
        return ToolExecutionResult.ok(self.prefix + parameters["text"])


class SleepHandler:
    name = "sleep"
    description = "Sleep for a while"
    parameters_schema = {"type": "object"}

    def __init__(self):
        self.cancelled = False

    def validate(self, parameters):
        return ValidationResult.success()

    async def execute(self, parameters, context):
        try:
            await asyncio.sleep(parameters.get("seconds", 5))
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return ToolExecutionResult.ok("woke up")


class RaisingHandler:
    name = "raising"
    description = "Always raises"
    parameters_schema = {"type": "object"}

    def __init__(self, exc: Exception):
        self.exc = exc

    def validate(self, parameters):
        return ValidationResult.success()

    async def execute(self, parameters, context):
        raise self.exc


@pytest.fixture
def executor(event_bus):
    return ToolExecutor(default_timeout=5.0, event_bus=event_bus)


class TestToolRegistration:
    """Tests for handler registration."""

    def test_register_and_list(self, executor):
        """Registered tools are listed with schemas."""
        executor.register("echo", EchoHandler())

        assert executor.has_tool("echo")
        assert executor.list_tools() == ["echo"]
        assert executor.get_schemas() == [
            {
                "name": "echo",
                "description": "Echo the text parameter",
                "input_schema": EchoHandler.parameters_schema,
            }
        ]

    @pytest.mark.parametrize("name", ["", "   "])
    def test_register_blank_name(self, executor, name):
        """Blank tool names are rejected."""
        with pytest.raises(ValueError, match="Tool name cannot be null or empty"):
            executor.register(name, EchoHandler())

    def test_register_none_handler(self, executor):
        """None handlers are rejected."""
        with pytest.raises(ValueError):
            executor.register("echo", None)

    @pytest.mark.asyncio
    async def test_reregistration_overwrites(self, executor):
        """Registering twice keeps one entry; the latest handler wins."""
        executor.register("echo", EchoHandler(prefix="old:"))
        executor.register("echo", EchoHandler(prefix="new:"))

        assert executor.list_tools() == ["echo"]
        result = await executor.execute("echo", {"text": "x"}, ExecutionContext())
        assert result.output == "new:x"

    def test_unregister(self, executor):
        """Unregistering removes the tool once."""
        executor.register("echo", EchoHandler())
        assert executor.unregister("echo")
        assert not executor.unregister("echo")
        assert not executor.has_tool("echo")


class TestToolExecution:
    """Tests for ToolExecutor.execute()."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, executor):
        """Unknown tools fail without raising."""
        result = await executor.execute("nope", {}, ExecutionContext())

        assert not result.success
        assert result.error == "No handler found for tool 'nope'"
        assert result.elapsed == 0.0

    @pytest.mark.asyncio
    async def test_validation_failure(self, executor):
        """Validation errors are reported before the handler runs."""
        executor.register("echo", EchoHandler())
        result = await executor.execute("echo", {}, ExecutionContext())

        assert not result.success
        assert result.error == "Parameter validation failed: 'text' is required"

    @pytest.mark.asyncio
    async def test_validation_error_raised(self, executor):
        """A handler may raise ValidationError instead of returning a result."""

        class StrictHandler(EchoHandler):
            def validate(self, parameters):
                raise ValidationError("unexpected parameter 'extra'")

        executor.register("strict", StrictHandler())
        result = await executor.execute("strict", {"extra": 1}, ExecutionContext())

        assert not result.success
        assert result.error == "Parameter validation failed: unexpected parameter 'extra'"
        assert result.elapsed >= 0.0

    @pytest.mark.asyncio
    async def test_success_sets_elapsed(self, executor):
        """Successful results carry the measured duration."""
        executor.register("echo", EchoHandler())
        result = await executor.execute("echo", {"text": "hi"}, ExecutionContext())

        assert result.success
        assert result.output == "hi"
        assert result.elapsed >= 0.0

    @pytest.mark.asyncio
    async def test_timeout(self, executor):
        """A 5 second handler under a 100ms limit times out promptly."""
        handler = SleepHandler()
        executor.register("sleep", handler)

        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await executor.execute(
            "sleep", {"seconds": 5}, ExecutionContext(), timeout=0.1
        )
        duration = loop.time() - started

        assert not result.success
        assert result.error == "Tool execution timed out after 0.1 seconds"
        assert duration < 2.0
        assert handler.cancelled

    @pytest.mark.asyncio
    async def test_cancel_event(self, executor):
        """Setting the cancel event stops a running handler."""
        executor.register("sleep", SleepHandler())
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, cancel.set)

        result = await executor.execute(
            "sleep", {"seconds": 5}, ExecutionContext(cancel_event=cancel)
        )

        assert not result.success
        assert result.error == CANCELLED_MESSAGE

    @pytest.mark.asyncio
    async def test_already_cancelled(self, executor):
        """A pre-cancelled context never starts the handler."""
        handler = SleepHandler()
        executor.register("sleep", handler)
        cancel = asyncio.Event()
        cancel.set()

        result = await executor.execute("sleep", {}, ExecutionContext(cancel_event=cancel))

        assert result.error == CANCELLED_MESSAGE
        assert not handler.cancelled

    @pytest.mark.asyncio
    async def test_domain_error_message_passes_through(self, executor):
        """ToolExecutionError messages are reported verbatim."""
        executor.register("raising", RaisingHandler(ToolExecutionError("File not found: x")))
        result = await executor.execute("raising", {}, ExecutionContext())

        assert result.error == "File not found: x"

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, executor):
        """Other exceptions become an Unexpected error result."""
        executor.register("raising", RaisingHandler(KeyError("k")))
        result = await executor.execute("raising", {}, ExecutionContext())

        assert not result.success
        assert result.error.startswith("Unexpected error:")

    @pytest.mark.asyncio
    async def test_publishes_tool_executed(self, executor, event_bus):
        """Every execution publishes a TOOL_EXECUTED event."""
        events = []

        async def handler(event: BusEvent):
            events.append(event)

        event_bus.subscribe(Topic.TOOL_EXECUTED, handler)
        executor.register("echo", EchoHandler())
        await executor.execute("echo", {"text": "x"}, ExecutionContext(agent_id="a1"))
        await event_bus.drain()

        assert len(events) == 1
        assert events[0].payload["tool_name"] == "echo"
        assert events[0].payload["agent_id"] == "a1"
        assert events[0].payload["success"] is True
