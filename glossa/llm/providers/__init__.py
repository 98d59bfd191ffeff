"""
LLM Provider Implementations

Available providers:
- echo_provider: offline echo, for tests and dry runs
- openai_provider: any OpenAI-compatible chat completions endpoint
"""

from typing import Any

from glossa.llm.base_provider import BaseLLMProvider, ProviderError
from glossa.llm.providers.echo_provider import EchoProvider
from glossa.llm.providers.openai_provider import OpenAIProvider

PROVIDERS = {
    "echo": EchoProvider,
    "openai": OpenAIProvider,
}


def create_provider(provider_type: str, **kwargs: Any) -> BaseLLMProvider:
    """
    Raises:
        ProviderError: Unknown provider type
    """
    provider_class = PROVIDERS.get(provider_type.lower())
    if provider_class is None:
        raise ProviderError(f"Unknown provider type: {provider_type}")
    return provider_class(**kwargs)


__all__ = ["EchoProvider", "OpenAIProvider", "PROVIDERS", "create_provider"]
