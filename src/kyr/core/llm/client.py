"""Text-generation client: the bridge between domain prompts and providers."""

from __future__ import annotations

import logging

from kyr.core.llm.provider import LLMProvider, ProviderError, ProviderResponse
from kyr.core.llm.response import clean_generated_text
from kyr.core.llm.system_prompt import build_full_system_prompt

logger = logging.getLogger(__name__)


class TextGenerationError(Exception):
    """Raised when the provider fails or returns no usable text."""


class TextGenerationClient:
    """Invokes the configured provider and returns plain text.

    Callers own the fallback: every failure surfaces as
    ``TextGenerationError`` so they can substitute canned text.
    """

    def __init__(self, provider: LLMProvider, provider_name: str = "") -> None:
        self.provider = provider
        self.provider_name = provider_name or type(provider).__name__

    async def complete(
        self,
        task_instructions: str,
        user_message: str,
        *,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ) -> str:
        """Generate text for ``user_message`` under ``task_instructions``.

        Raises:
            TextGenerationError: On provider error or empty output.
        """
        try:
            response: ProviderResponse = await self.provider.generate(
                system_message=build_full_system_prompt(task_instructions),
                user_message=user_message,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except ProviderError as exc:
            logger.warning(
                "Text generation failed (%s): %s status=%s",
                self.provider_name,
                exc.reason,
                exc.status_code,
            )
            raise TextGenerationError(f"Provider {self.provider_name} failed") from exc
        except Exception as exc:
            logger.warning("Text generation failed (%s): %s", self.provider_name, type(exc).__name__)
            raise TextGenerationError(f"Provider {self.provider_name} failed") from exc

        logger.info(
            "Text generation: model=%s, tokens=%d+%d, latency=%.0fms",
            response.model,
            response.input_tokens,
            response.output_tokens,
            response.latency_ms,
        )

        content = clean_generated_text(response.content)
        if not content:
            raise TextGenerationError("Provider returned empty text")
        return content
