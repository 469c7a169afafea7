"""Tests for ToolDispatcher."""

import pytest

from conductor.agents import ToolDispatcher
from conductor.models import BusEvent, ToolCall, Topic


class TestToolDispatcher:
    """Tests for routing tool calls through the gate and executor."""

    @pytest.mark.asyncio
    async def test_approved_call_runs(self, tool_executor, approval_gate, tmp_path):
        """An approved call is executed in the working directory."""
        (tmp_path / "notes.txt").write_text("hi", encoding="utf-8")
        dispatcher = ToolDispatcher(tool_executor, approval_gate)

        result = await dispatcher.dispatch(
            ToolCall(name="list_files", parameters={"path": "."}, agent_id="a1"),
            str(tmp_path),
        )

        assert result.success
        assert "notes.txt" in result.output

    @pytest.mark.asyncio
    async def test_denied_call_is_failed_result(self, dispatcher, tool_executor, tmp_path):
        """A denied call never reaches the executor."""
        calls = []
        original = tool_executor.execute

        async def spy(*args, **kwargs):
            calls.append(args)
            return await original(*args, **kwargs)

        tool_executor.execute = spy
        result = await dispatcher.dispatch(
            ToolCall(name="bash_command", parameters={"command": "rm -rf /"}, agent_id="a1"),
            str(tmp_path),
        )

        assert not result.success
        assert result.error == "Approval denied: Command matches blacklist pattern"
        assert result.metadata["approval_denied"] is True
        assert calls == []

    @pytest.mark.asyncio
    async def test_events_come_from_gate_and_executor(self, dispatcher, event_bus, tmp_path):
        """Dispatching publishes the gate's decision and the executor's result."""
        topics = []

        async def handler(event: BusEvent):
            topics.append(event.topic)

        event_bus.subscribe_all(handler)
        await dispatcher.dispatch(
            ToolCall(name="list_files", parameters={"path": "."}, agent_id="a1"),
            str(tmp_path),
        )
        await event_bus.drain()

        assert topics.count(Topic.APPROVAL_RESOLVED) == 1
        assert topics.count(Topic.TOOL_EXECUTED) == 1
