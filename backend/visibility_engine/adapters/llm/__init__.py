"""
LLM Adapters - answer engine and semantic-analysis transports
"""

from typing import Optional

from .base import (
    BaseLLMAdapter,
    LLMConfig,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    LLMProviderType,
    LLMAdapterError,
    LLMRateLimitError,
    LLMAuthenticationError,
    LLMTimeoutError,
    LLMInvalidRequestError,
    LLMServerError,
    LLMMalformedResponseError,
    parse_retry_after,
)
from .openai_adapter import OpenAIAdapter
from .perplexity_adapter import PerplexityAdapter


def get_adapter(
    provider: str,
    api_key: Optional[str] = None,
    config: Optional[LLMConfig] = None
) -> BaseLLMAdapter:
    """
    Factory function to get the appropriate LLM adapter.

    Args:
        provider: One of "openai", "perplexity"
        api_key: Optional API key (uses env var if not provided)
        config: Optional LLM configuration

    Returns:
        Configured LLM adapter instance

    Raises:
        ValueError: If provider is not supported
    """
    adapters = {
        "openai": OpenAIAdapter,
        "perplexity": PerplexityAdapter,
    }

    if provider not in adapters:
        raise ValueError(f"Unsupported provider: {provider}. Must be one of {list(adapters.keys())}")

    return adapters[provider](api_key=api_key, config=config)


__all__ = [
    # Factory
    "get_adapter",
    # Base classes
    "BaseLLMAdapter",
    "LLMConfig",
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
    "LLMProviderType",
    "parse_retry_after",
    # Exceptions
    "LLMAdapterError",
    "LLMRateLimitError",
    "LLMAuthenticationError",
    "LLMTimeoutError",
    "LLMInvalidRequestError",
    "LLMServerError",
    "LLMMalformedResponseError",
    # Adapters
    "OpenAIAdapter",
    "PerplexityAdapter",
]
