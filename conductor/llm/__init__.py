"""Remote model providers."""

from .llm_provider import (
    AnthropicProvider,
    ILLMProvider,
    OpenRouterProvider,
    create_provider,
    iter_sse_data,
)

__all__ = [
    "AnthropicProvider",
    "ILLMProvider",
    "OpenRouterProvider",
    "create_provider",
    "iter_sse_data",
]
