"""
Echo provider for offline runs and tests.

Text requests are answered by echoing the most recent message in the
history. Typed requests are answered with the schema's default instance,
which for the logogram schemas means ``stop`` is already true.
"""

import time
import logging

from glossa.llm.base_provider import (
    BaseLLMProvider,
    LLMRequest,
    LLMResponse,
    ProviderType,
)

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "I hear you: "


class EchoProvider(BaseLLMProvider):
    """Never calls out to a model. Always succeeds."""

    def __init__(self, prefix: str = DEFAULT_PREFIX, verbose_logging: bool = False, **kwargs):
        """
        Args:
            prefix: Prepended to every echoed text
            verbose_logging: Enable detailed logging
            **kwargs: Ignored, for interface compatibility
        """
        super().__init__(verbose_logging=verbose_logging)
        self.provider_type = ProviderType.ECHO
        self.default_model = "echo"
        self.prefix = prefix

    def complete(self, request: LLMRequest) -> LLMResponse:
        start_time = time.time()

        if request.response_schema is not None:
            content = request.response_schema().model_dump_json()
        elif request.history:
            content = self.prefix + request.history[-1].text
        else:
            content = self.prefix.strip()

        if self.verbose_logging:
            logger.info(f"Echo response for {request.agent_id or 'unknown'} ({len(content)} chars)")

        return LLMResponse(
            content=content,
            response_time=time.time() - start_time,
            model=self.default_model,
            provider=self.get_provider_name(),
        )

    def test_connection(self) -> bool:
        return True
