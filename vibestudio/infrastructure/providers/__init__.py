"""LLM providers: one adapter per vendor behind the LLMProvider contract."""

from vibestudio.config import get_settings
from vibestudio.core.errors import UnconfiguredError
from vibestudio.infrastructure.providers.anthropic_provider import AnthropicProvider
from vibestudio.infrastructure.providers.contract import (
    AgentEvents, LLMConfig, LLMProvider, LLMResponse, ToolExecutor,
)
from vibestudio.infrastructure.providers.openai_provider import OpenAICompatibleProvider

OPENAI_COMPATIBLE = frozenset({"openai", "deepseek", "gemini"})


def create_provider(config: LLMConfig) -> LLMProvider:
    """Build the adapter for config.provider. Unknown vendor -> UnconfiguredError."""
    settings = get_settings()
    if config.provider == "anthropic":
        return AnthropicProvider(
            config.api_key,
            config.model,
            base_url=config.base_url,
            max_tokens=settings.agent_max_tokens,
            max_retries=settings.llm_max_retries,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    if config.provider in OPENAI_COMPATIBLE:
        return OpenAICompatibleProvider(
            config.api_key,
            config.model,
            provider=config.provider,
            base_url=config.base_url,
            max_tokens=settings.agent_max_tokens,
            max_retries=settings.llm_max_retries,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    raise UnconfiguredError(f"Unsupported AI provider: {config.provider}")


__all__ = [
    "AgentEvents",
    "AnthropicProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "OpenAICompatibleProvider",
    "ToolExecutor",
    "create_provider",
]
