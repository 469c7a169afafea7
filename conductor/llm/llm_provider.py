"""Remote model providers streaming Messages-API style frames."""

import json
import os
from typing import Any, AsyncIterator, Mapping, Protocol

import anthropic
import httpx

from ..errors import InitializationError, UnsupportedProviderError
from ..logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

_STOP_REASONS = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "length": "max_tokens",
}


class ILLMProvider(Protocol):
    """Abstraction for a streaming model backend.

    Messages use {"role", "content"} where content is a string or a list of
    text / tool_use / tool_result blocks. The stream yields frames in the
    message_start ... message_stop vocabulary whatever the backend's own
    wire format is.
    """

    name: str

    def stream(
        self,
        messages: list[dict],
        system: str | None = None,
        tools: list[dict] | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> AsyncIterator[dict]:
        """Stream response frames."""
        ...


class AnthropicProvider:
    """Anthropic Claude API provider."""

    name = "anthropic"

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_MODEL):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise InitializationError("ANTHROPIC_API_KEY environment variable not set")

        self._model = model
        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)

    async def stream(
        self,
        messages: list[dict],
        system: str | None = None,
        tools: list[dict] | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> AsyncIterator[dict]:
        """Stream frames from the Messages API."""
        kwargs: dict[str, Any] = {}
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await self._client.messages.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens,
                stream=True,
                **kwargs,
            )
            async for event in response:
                yield event.model_dump()
        except Exception as e:
            raise RuntimeError(f"LLM API error: {e}") from e


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the data payloads of a Server-Sent Events stream until [DONE]."""
    async for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return
        if data:
            yield data


class OpenRouterProvider:
    """OpenRouter (OpenAI-compatible chat completions) provider over httpx."""

    name = "openrouter"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        base_url: str = OPENROUTER_BASE_URL,
        client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ):
        self._api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self._api_key:
            raise InitializationError("OPENROUTER_API_KEY environment variable not set")

        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def to_wire(messages: list[dict], system: str | None = None) -> list[dict]:
        """Convert block-style messages into chat-completions messages."""
        wire: list[dict] = []
        if system:
            wire.append({"role": "system", "content": system})

        for message in messages:
            content = message["content"]
            if isinstance(content, str):
                wire.append({"role": message["role"], "content": content})
                continue

            texts = [b["text"] for b in content if b.get("type") == "text"]
            tool_uses = [b for b in content if b.get("type") == "tool_use"]
            tool_results = [b for b in content if b.get("type") == "tool_result"]

            for result in tool_results:
                wire.append(
                    {
                        "role": "tool",
                        "tool_call_id": result["tool_use_id"],
                        "content": str(result.get("content", "")),
                    }
                )

            if texts or tool_uses:
                entry: dict[str, Any] = {
                    "role": message["role"],
                    "content": "\n".join(texts) or None,
                }
                if tool_uses:
                    entry["tool_calls"] = [
                        {
                            "id": b["id"],
                            "type": "function",
                            "function": {
                                "name": b["name"],
                                "arguments": json.dumps(b.get("input", {})),
                            },
                        }
                        for b in tool_uses
                    ]
                wire.append(entry)

        return wire

    @staticmethod
    def tools_to_wire(tools: list[dict]) -> list[dict]:
        return [
            {
                "type": "function",
                "function": {
                    "name": t["name"],
                    "description": t.get("description", ""),
                    "parameters": t.get("input_schema", {"type": "object"}),
                },
            }
            for t in tools
        ]

    async def stream(
        self,
        messages: list[dict],
        system: str | None = None,
        tools: list[dict] | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> AsyncIterator[dict]:
        """Stream chat-completion chunks, translated into frames."""
        body: dict[str, Any] = {
            "model": self._model,
            "messages": self.to_wire(messages, system),
            "max_tokens": max_tokens,
            "stream": True,
        }
        if tools:
            body["tools"] = self.tools_to_wire(tools)
        if temperature is not None:
            body["temperature"] = temperature
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        # index -> {"id", "name", "arguments"}
        tool_calls: dict[int, dict] = {}
        finish_reason = None
        started = False

        try:
            async with self._client.stream(
                "POST", f"{self._base_url}/chat/completions", json=body, headers=headers
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise RuntimeError(f"HTTP {response.status_code}: {detail[:500]}")

                async for data in iter_sse_data(response.aiter_lines()):
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug("Ignoring malformed SSE payload: %s", data[:200])
                        continue

                    if not started:
                        started = True
                        yield {"type": "message_start", "message": {"id": chunk.get("id")}}

                    for choice in chunk.get("choices") or []:
                        delta = choice.get("delta") or {}
                        if delta.get("content"):
                            yield {
                                "type": "content_block_delta",
                                "index": 0,
                                "delta": {"type": "text_delta", "text": delta["content"]},
                            }
                        for call in delta.get("tool_calls") or []:
                            slot = tool_calls.setdefault(
                                call.get("index", 0), {"id": None, "name": "", "arguments": ""}
                            )
                            function = call.get("function") or {}
                            slot["id"] = call.get("id") or slot["id"]
                            slot["name"] += function.get("name") or ""
                            slot["arguments"] += function.get("arguments") or ""
                        finish_reason = choice.get("finish_reason") or finish_reason
        except RuntimeError as e:
            raise RuntimeError(f"LLM API error: {e}") from e
        except httpx.HTTPError as e:
            raise RuntimeError(f"LLM API error: {e}") from e

        if not started:
            yield {"type": "message_start", "message": {"id": None}}

        for offset, index in enumerate(sorted(tool_calls)):
            call = tool_calls[index]
            block_index = offset + 1
            yield {
                "type": "content_block_start",
                "index": block_index,
                "content_block": {
                    "type": "tool_use",
                    "id": call["id"],
                    "name": call["name"],
                    "input": {},
                },
            }
            if call["arguments"]:
                yield {
                    "type": "content_block_delta",
                    "index": block_index,
                    "delta": {"type": "input_json_delta", "partial_json": call["arguments"]},
                }
            yield {"type": "content_block_stop", "index": block_index}

        yield {
            "type": "message_delta",
            "delta": {"stop_reason": _STOP_REASONS.get(finish_reason, finish_reason)},
        }
        yield {"type": "message_stop"}

    async def close(self) -> None:
        await self._client.aclose()


PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openrouter": OpenRouterProvider,
}


def create_provider(settings: Mapping[str, Any]) -> ILLMProvider:
    """Map the "provider" setting to a concrete provider instance.

    Unknown values raise UnsupportedProviderError; missing credentials raise
    InitializationError.
    """
    name = str(settings.get("provider") or "anthropic").strip().lower()
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise UnsupportedProviderError(f"Unsupported provider: '{name}'")

    api_key = settings.get("api_key")
    if not api_key and settings.get("api_key_env"):
        api_key = os.getenv(str(settings["api_key_env"]))

    kwargs: dict[str, Any] = {
        "api_key": api_key,
        "model": settings.get("model") or DEFAULT_MODEL,
    }
    if name == "openrouter" and settings.get("base_url"):
        kwargs["base_url"] = settings["base_url"]

    logger.info("Creating %s provider (model %s)", name, kwargs["model"])
    return provider_cls(**kwargs)
