"""Shared test doubles."""

import asyncio
from pathlib import Path
from typing import AsyncIterator

from conductor.models import (
    AgentKind,
    AgentResponse,
    AgentStatus,
    AgentStatusInfo,
    ResponseType,
)

FAKE_CLI = Path(__file__).parent / "fixtures" / "fake_agent_cli.py"


async def text_frames(text: str, stop_reason: str = "end_turn") -> AsyncIterator[dict]:
    """Provider frames for a plain text answer."""
    yield {"type": "message_start", "message": {"id": "msg_test", "usage": {"input_tokens": 3}}}
    yield {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}}
    yield {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}
    yield {"type": "content_block_stop", "index": 0}
    yield {
        "type": "message_delta",
        "delta": {"stop_reason": stop_reason},
        "usage": {"output_tokens": 5},
    }
    yield {"type": "message_stop"}


async def tool_use_frames(tool_id: str, name: str, arguments: str) -> AsyncIterator[dict]:
    """Provider frames for a single tool_use request."""
    yield {"type": "message_start", "message": {"id": "msg_tool"}}
    yield {
        "type": "content_block_start",
        "index": 0,
        "content_block": {"type": "tool_use", "id": tool_id, "name": name, "input": {}},
    }
    yield {
        "type": "content_block_delta",
        "index": 0,
        "delta": {"type": "input_json_delta", "partial_json": arguments},
    }
    yield {"type": "content_block_stop", "index": 0}
    yield {"type": "message_delta", "delta": {"stop_reason": "tool_use"}}
    yield {"type": "message_stop"}


class ScriptedAgent:
    """Minimal agent answering from a callable, for orchestrator tests."""

    kind = AgentKind.PROVIDER

    def __init__(self, agent_id: str, answer=None, delay: float = 0.0, fail: bool = False):
        self.agent_id = agent_id
        self.answer = answer or (lambda message: f"{agent_id} done")
        self.delay = delay
        self.fail = fail
        self.received = []
        self.windows = []  # (start, end) loop times per message
        self.status = AgentStatus.READY

    async def send_message(self, message, cancel_event=None):
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.received.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.windows.append((started, loop.time()))
        if self.fail:
            yield AgentResponse.failure(message.id, f"{self.agent_id} failed")
            return
        text = self.answer(message)
        yield AgentResponse(message_id=message.id, content=text)
        yield AgentResponse(
            message_id=message.id,
            content=text,
            type=ResponseType.TEXT,
            is_complete=True,
            stop_reason="end_turn",
        )

    def get_status(self):
        return AgentStatusInfo(
            agent_id=self.agent_id,
            kind=self.kind,
            status=self.status,
            last_activity=None,
            healthy=self.status == AgentStatus.READY,
        )

    async def shutdown(self):
        self.status = AgentStatus.SHUTDOWN
