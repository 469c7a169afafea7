"""Tests for LLM providers."""

import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from conductor.agents import StreamAccumulator
from conductor.errors import InitializationError, UnsupportedProviderError
from conductor.llm import (
    AnthropicProvider,
    OpenRouterProvider,
    create_provider,
    iter_sse_data,
)


async def _events(*frames):
    for frame in frames:
        event = Mock()
        event.model_dump.return_value = frame
        yield event


async def _collect(stream) -> list[dict]:
    return [frame async for frame in stream]


class TestAnthropicProvider:
    """Tests for AnthropicProvider."""

    def test_init_without_api_key(self, monkeypatch):
        """Test initialization without API key raises error."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with patch("conductor.llm.llm_provider.anthropic.AsyncAnthropic"):
            with pytest.raises(InitializationError):
                AnthropicProvider()

    @pytest.mark.asyncio
    async def test_stream_yields_frames(self, monkeypatch):
        """Stream events are passed through as frame dicts."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")

        frames = [
            {"type": "message_start", "message": {"id": "m1"}},
            {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hi"}},
            {"type": "message_stop"},
        ]
        mock_client = Mock()
        mock_client.messages.create = AsyncMock(return_value=_events(*frames))

        with patch(
            "conductor.llm.llm_provider.anthropic.AsyncAnthropic",
            return_value=mock_client,
        ):
            provider = AnthropicProvider(model="claude-test")
            result = await _collect(
                provider.stream(
                    [{"role": "user", "content": "Hello"}],
                    system="You are helpful",
                    tools=[{"name": "t", "description": "", "input_schema": {}}],
                    temperature=0.2,
                )
            )

        assert result == frames
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["stream"] is True
        assert kwargs["system"] == "You are helpful"
        assert kwargs["temperature"] == 0.2
        assert kwargs["tools"][0]["name"] == "t"

    @pytest.mark.asyncio
    async def test_stream_wraps_errors(self, monkeypatch):
        """API failures surface as RuntimeError with a descriptive prefix."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        mock_client = Mock()
        mock_client.messages.create = AsyncMock(side_effect=Exception("API Error"))

        with patch(
            "conductor.llm.llm_provider.anthropic.AsyncAnthropic",
            return_value=mock_client,
        ):
            provider = AnthropicProvider()
            with pytest.raises(RuntimeError, match="LLM API error: API Error"):
                await _collect(provider.stream([{"role": "user", "content": "x"}]))


class TestCreateProvider:
    """Tests for provider selection."""

    def test_unknown_provider(self):
        """Unknown provider names are rejected."""
        with pytest.raises(UnsupportedProviderError, match="Unsupported provider: 'gpt-local'"):
            create_provider({"provider": "gpt-local"})

    def test_anthropic_default(self, monkeypatch):
        """The anthropic provider is the default."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test_key")
        with patch("conductor.llm.llm_provider.anthropic.AsyncAnthropic"):
            provider = create_provider({})
        assert provider.name == "anthropic"

    def test_api_key_env(self, monkeypatch):
        """api_key_env names the variable holding the key."""
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.setenv("MY_ROUTER_KEY", "secret")
        provider = create_provider({"provider": "OpenRouter", "api_key_env": "MY_ROUTER_KEY"})
        assert provider.name == "openrouter"


class TestSSE:
    """Tests for Server-Sent Events parsing."""

    @pytest.mark.asyncio
    async def test_iter_sse_data(self):
        """Only data lines are yielded, up to [DONE]."""

        async def lines():
            for line in [": keep-alive", "data: {\"a\": 1}", "", "event: x", "data: [DONE]", "data: late"]:
                yield line

        assert [d async for d in iter_sse_data(lines())] == ['{"a": 1}']


def _sse(*chunks: dict) -> bytes:
    body = "".join(f"data: {json.dumps(c)}\n\n" for c in chunks)
    return (body + "data: [DONE]\n\n").encode("utf-8")


class TestOpenRouterProvider:
    """Tests for OpenRouterProvider over a mocked transport."""

    @pytest.mark.asyncio
    async def test_stream_text_and_tool_call(self):
        """Chat-completion chunks are translated into frames."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=_sse(
                    {"id": "gen-1", "choices": [{"delta": {"content": "Hel"}}]},
                    {"choices": [{"delta": {"content": "lo"}}]},
                    {
                        "choices": [
                            {
                                "delta": {
                                    "tool_calls": [
                                        {
                                            "index": 0,
                                            "id": "call_1",
                                            "function": {"name": "bash_command", "arguments": "{\"comm"},
                                        }
                                    ]
                                }
                            }
                        ]
                    },
                    {
                        "choices": [
                            {"delta": {"tool_calls": [{"index": 0, "function": {"arguments": "and\": \"ls\"}"}}]}}
                        ]
                    },
                    {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
                ),
            )

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = OpenRouterProvider(api_key="key", model="m", client=client)

        acc = StreamAccumulator()
        async for frame in provider.stream(
            [{"role": "user", "content": "run ls"}],
            system="sys",
            tools=[{"name": "bash_command", "description": "d", "input_schema": {"type": "object"}}],
        ):
            acc.feed(frame)
        await provider.close()

        assert acc.completed
        assert acc.text == "Hello"
        assert acc.message_id == "gen-1"
        assert acc.stop_reason == "tool_use"
        assert len(acc.tool_calls) == 1
        assert acc.tool_calls[0].id == "call_1"
        assert acc.tool_calls[0].parameters == {"command": "ls"}

        body = json.loads(requests[0].content)
        assert requests[0].url.path.endswith("/chat/completions")
        assert requests[0].headers["authorization"] == "Bearer key"
        assert body["messages"][0] == {"role": "system", "content": "sys"}
        assert body["tools"][0]["function"]["name"] == "bash_command"
        assert body["stream"] is True

    @pytest.mark.asyncio
    async def test_http_error(self):
        """HTTP errors surface as RuntimeError."""
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="overloaded"))
        )
        provider = OpenRouterProvider(api_key="key", client=client)

        with pytest.raises(RuntimeError, match="LLM API error: HTTP 500"):
            await _collect(provider.stream([{"role": "user", "content": "x"}]))
        await provider.close()

    def test_to_wire_tool_blocks(self):
        """Block-style tool turns become tool_calls and tool messages."""
        wire = OpenRouterProvider.to_wire(
            [
                {"role": "user", "content": "go"},
                {
                    "role": "assistant",
                    "content": [
                        {"type": "text", "text": "calling"},
                        {"type": "tool_use", "id": "t1", "name": "list_files", "input": {"path": "."}},
                    ],
                },
                {
                    "role": "user",
                    "content": [{"type": "tool_result", "tool_use_id": "t1", "content": "a.py"}],
                },
            ]
        )

        assert wire[0] == {"role": "user", "content": "go"}
        assert wire[1]["tool_calls"][0]["function"]["arguments"] == json.dumps({"path": "."})
        assert wire[2] == {"role": "tool", "tool_call_id": "t1", "content": "a.py"}
