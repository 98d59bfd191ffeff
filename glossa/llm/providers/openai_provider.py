"""
OpenAI-compatible provider.

Works with any server implementing the chat completions API (OpenAI,
LM Studio, Ollama, vLLM). Typed requests use JSON-schema response formats.
"""

import time
import logging
from typing import Optional

import httpx
import openai
from openai import OpenAI

from glossa.llm.base_provider import (
    BaseLLMProvider,
    LLMRequest,
    LLMResponse,
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderError,
    ProviderRateLimitError,
    ProviderType,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """Chat completions over the openai client."""

    def __init__(self, base_url: str = "https://api.openai.com/v1",
                 model: str = "gpt-4o-mini", api_key: Optional[str] = None,
                 timeout: int = 120, verbose_logging: bool = False):
        """
        Args:
            base_url: API endpoint
            model: Default model identifier
            api_key: API key; local servers accept any value
            timeout: Request timeout in seconds
            verbose_logging: Enable detailed logging
        """
        super().__init__(verbose_logging=verbose_logging)

        self.provider_type = ProviderType.OPENAI
        self.base_url = base_url.rstrip("/")
        self.default_model = model
        self.api_key = api_key or "not-needed"
        self.timeout = timeout

        self.client = OpenAI(base_url=self.base_url, api_key=self.api_key, timeout=timeout)

        if self.verbose_logging:
            logger.info(f"OpenAI provider initialized: {self.base_url} ({model})")

    def complete(self, request: LLMRequest) -> LLMResponse:
        """Generate a completion, constrained to the request's schema if it has one."""
        start_time = time.time()
        model = request.model or self.default_model

        completion_args = {
            "model": model,
            "messages": request.chat_messages(),
            "temperature": request.temperature,
        }
        if request.max_tokens:
            completion_args["max_tokens"] = request.max_tokens
        completion_args.update(request.extra_params)
        if request.response_schema is not None:
            completion_args["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": request.response_schema.__name__,
                    "schema": request.response_schema.model_json_schema(),
                },
            }

        if self.verbose_logging:
            logger.info(f"OpenAI API call for {request.agent_id or 'unknown'}")
            logger.info(f"  Model: {model}, history: {len(request.history)} messages")

        try:
            response = self.client.chat.completions.create(**completion_args)
        except openai.AuthenticationError as e:
            raise ProviderAuthenticationError(f"Authentication failed: {e}")
        except openai.RateLimitError as e:
            raise ProviderRateLimitError(f"Rate limit exceeded: {e}")
        except openai.APIConnectionError as e:
            raise ProviderConnectionError(f"Cannot reach {self.base_url}: {e}")
        except openai.OpenAIError as e:
            raise ProviderError(f"Completion failed: {e}")

        response_time = time.time() - start_time
        choice = response.choices[0]
        tokens_used = response.usage.total_tokens if response.usage else 0

        if self.verbose_logging:
            logger.info(f"  Response time: {response_time:.2f}s")
            logger.info(f"  Tokens: {tokens_used}")

        return LLMResponse(
            content=choice.message.content or "",
            tokens_used=tokens_used,
            response_time=response_time,
            model=response.model,
            provider=self.get_provider_name(),
            finish_reason=choice.finish_reason or "stop",
        )

    def test_connection(self) -> bool:
        try:
            response = httpx.get(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=5.0,
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Connection test to {self.base_url} failed: {e}")
            return False
