"""
Base Provider Abstraction for Glossa agents

Defines the abstract base class and data structures for the language-model
backends an agent can wrap. The agent only needs two capabilities: a plain
text completion over its conversation history, and a typed completion that
returns JSON matching a pydantic schema.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from glossa.communication.message_types import ChatRole, Message


class ProviderType(Enum):
    """Supported LLM provider types."""
    ECHO = "echo"
    OPENAI = "openai"


@dataclass
class LLMRequest:
    """
    Unified request structure for all LLM providers.

    Attributes:
        system_prompt: The agent's current instructions
        history: Conversation so far, oldest first
        temperature: Sampling temperature
        max_tokens: Maximum tokens to generate (None for provider default)
        agent_id: Agent name for logging
        model: Optional model override (uses provider default if None)
        response_schema: Pydantic model the reply must match, for typed requests
    """
    system_prompt: str
    history: List[Message]
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    agent_id: Optional[str] = None
    model: Optional[str] = None
    response_schema: Optional[Type[BaseModel]] = None

    extra_params: Dict[str, Any] = field(default_factory=dict)

    def chat_messages(self) -> List[Dict[str, str]]:
        """OpenAI-style message list: system prompt, then history with roles mapped."""
        messages = [{"role": "system", "content": self.system_prompt}]
        for message in self.history:
            role = "assistant" if message.role == ChatRole.MODEL else "user"
            messages.append({"role": role, "content": message.text})
        return messages


@dataclass
class LLMResponse:
    """
    Unified response structure from all LLM providers.

    Attributes:
        content: The generated text content
        tokens_used: Total tokens consumed (prompt + completion)
        response_time: Time taken to generate response (seconds)
        model: Actual model used
        provider: Provider that generated this response
        finish_reason: Why generation stopped (e.g., "stop", "length", "error")
    """
    content: str
    tokens_used: int = 0
    response_time: float = 0.0
    model: str = ""
    provider: str = ""
    finish_reason: str = "stop"
    created_at: float = field(default_factory=time.time)


class ProviderError(Exception):
    """Base exception for provider errors."""
    pass


class ProviderConnectionError(ProviderError):
    """Raised when provider connection fails."""
    pass


class ProviderAuthenticationError(ProviderError):
    """Raised when provider authentication fails."""
    pass


class ProviderRateLimitError(ProviderError):
    """Raised when provider rate limit is exceeded."""
    pass


class ProviderResponseError(ProviderError):
    """Raised when a typed response does not match its schema."""
    pass


class BaseLLMProvider(ABC):
    """
    Abstract base class for all LLM providers.

    Implementations are synchronous; the agent runs them in a worker thread.
    """

    def __init__(self, **kwargs):
        """
        Initialize the provider.

        Common kwargs:
            base_url: Base URL for API (for local/custom providers)
            api_key: API key for authentication
            model: Default model to use
            timeout: Request timeout in seconds
            verbose_logging: Enable detailed logging
        """
        self.provider_type: Optional[ProviderType] = None
        self.default_model: Optional[str] = None
        self.verbose_logging = kwargs.get('verbose_logging', False)

    @abstractmethod
    def complete(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion.

        When ``request.response_schema`` is set the content must be JSON
        matching it.

        Raises:
            ProviderError: If completion fails
        """
        pass

    def complete_typed(self, request: LLMRequest, schema: Type[BaseModel]) -> BaseModel:
        """
        Generate a completion and validate it against ``schema``.

        Raises:
            ProviderResponseError: If the content does not match the schema
        """
        request.response_schema = schema
        response = self.complete(request)
        try:
            return schema.model_validate_json(response.content)
        except ValueError as e:
            raise ProviderResponseError(f"response is not a valid {schema.__name__}: {e}") from e

    @abstractmethod
    def test_connection(self) -> bool:
        """
        Test if the provider is reachable and operational.

        Returns:
            True if connection successful, False otherwise
        """
        pass

    def get_provider_name(self) -> str:
        """Get human-readable provider name."""
        return self.provider_type.value if self.provider_type else "unknown"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} provider={self.get_provider_name()} model={self.default_model}>"
