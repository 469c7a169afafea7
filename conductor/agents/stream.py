"""Accumulates newline-delimited JSON stream frames into one response."""

import json

from ..logging_config import get_logger
from ..models import TokenUsage, ToolCall

logger = get_logger(__name__)


class StreamAccumulator:
    """Folds message_start ... message_stop frames into text and tool calls.

    Unknown frame types and malformed lines are ignored, so any subset or
    reordering of frames is tolerated. Text is the concatenation of every
    content_block_delta text field seen before message_stop.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        """Forget everything accumulated so far."""
        self.message_id: str | None = None
        self.stop_reason: str | None = None
        self.completed = False
        self.usage = TokenUsage()
        self.tool_calls: list[ToolCall] = []
        self._parts: list[str] = []
        self._tool_blocks: dict[int, dict] = {}

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def frames_seen(self) -> bool:
        return self.message_id is not None or bool(self._parts) or self.completed

    def feed_line(self, line: str) -> str | None:
        """Parse one output line; returns the text delta it carried, if any."""
        line = line.strip()
        if not line:
            return None
        try:
            frame = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Ignoring non-JSON output line: %s", line[:200])
            return None
        if not isinstance(frame, dict):
            return None
        return self.feed(frame)

    def feed(self, frame: dict) -> str | None:
        """Apply one decoded frame; returns its text delta, if any."""
        frame_type = frame.get("type")

        if frame_type == "message_start":
            message = frame.get("message") or {}
            self.message_id = message.get("id") or self.message_id
            usage = message.get("usage") or {}
            self.usage.input_tokens = usage.get("input_tokens") or self.usage.input_tokens

        elif frame_type == "content_block_start":
            block = frame.get("content_block") or {}
            if block.get("type") == "tool_use":
                self._tool_blocks[frame.get("index", 0)] = {
                    "id": block.get("id"),
                    "name": block.get("name", ""),
                    "input": block.get("input") or {},
                    "partial_json": "",
                }
            elif isinstance(block.get("text"), str) and block["text"]:
                self._parts.append(block["text"])
                return block["text"]

        elif frame_type == "content_block_delta":
            delta = frame.get("delta") or {}
            text = delta.get("text")
            if isinstance(text, str):
                self._parts.append(text)
                return text
            partial = delta.get("partial_json")
            block = self._tool_blocks.get(frame.get("index", 0))
            if isinstance(partial, str) and block is not None:
                block["partial_json"] += partial

        elif frame_type == "content_block_stop":
            block = self._tool_blocks.pop(frame.get("index", 0), None)
            if block is not None:
                self._finish_tool_block(block)

        elif frame_type == "message_delta":
            delta = frame.get("delta") or {}
            self.stop_reason = delta.get("stop_reason") or self.stop_reason
            usage = frame.get("usage") or {}
            self.usage.output_tokens = usage.get("output_tokens") or self.usage.output_tokens

        elif frame_type == "message_stop":
            # Tool blocks without an explicit stop still count
            for block in self._tool_blocks.values():
                self._finish_tool_block(block)
            self._tool_blocks.clear()
            self.completed = True

        return None

    def _finish_tool_block(self, block: dict) -> None:
        parameters = block["input"]
        if block["partial_json"]:
            try:
                parameters = json.loads(block["partial_json"])
            except json.JSONDecodeError:
                logger.warning("Malformed tool input for %s", block["name"])
                parameters = {}
        if not isinstance(parameters, dict):
            parameters = {"input": parameters}

        kwargs = {"name": block["name"], "parameters": parameters}
        if block["id"]:
            kwargs["id"] = block["id"]
        self.tool_calls.append(ToolCall(**kwargs))
