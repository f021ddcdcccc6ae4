"""Text-generation provider protocol, error type and construction from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kyr.core.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
    "mock": "mock",
}


class ProviderError(Exception):
    """A provider call failed before producing a completion."""

    def __init__(self, provider: str, reason: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason
        self.status_code = status_code


@dataclass
class ProviderResponse:
    """One completion plus the usage numbers we log."""

    content: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float


@runtime_checkable
class LLMProvider(Protocol):
    """A single system+user completion.

    Summaries and scripts are short, so the default budget is a few
    hundred tokens.
    """

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ) -> ProviderResponse: ...


def create_provider(
    provider_name: str,
    api_key: str = "",
    model: str = "",
    base_url: str | None = None,
    timeout_s: float = 20.0,
) -> LLMProvider:
    """Create a text-generation provider by name.

    Args:
        provider_name: "anthropic", "openai", or "mock".
        api_key: API key for the provider.
        model: Model identifier; empty selects ``DEFAULT_MODELS[provider_name]``.
        base_url: OpenAI-compatible endpoint (e.g. an OpenRouter URL).
        timeout_s: Per-request timeout for the SDK client.
    """
    if provider_name not in DEFAULT_MODELS:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
    model = model or DEFAULT_MODELS[provider_name]

    if provider_name == "anthropic":
        from kyr.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=api_key, model=model, timeout_s=timeout_s)
    if provider_name == "openai":
        from kyr.core.llm.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model, base_url=base_url, timeout_s=timeout_s)

    from kyr.core.llm.providers.mock import MockProvider

    return MockProvider()


def provider_from_settings(settings: Settings) -> tuple[str, LLMProvider]:
    """Build the configured provider, degrading to the mock when no key is set.

    Returns: (effective provider name, provider)
    """
    requested = settings.llm_provider
    keys = {
        "anthropic": (settings.anthropic_api_key, settings.anthropic_model),
        "openai": (settings.openai_api_key, settings.openai_model),
    }
    if requested == "mock":
        return "mock", create_provider("mock")

    api_key, model = keys[requested]
    if not api_key:
        logger.warning("No API key configured for provider '%s'; using mock text", requested)
        return "mock", create_provider("mock")

    base_url = (settings.openai_base_url or None) if requested == "openai" else None
    provider = create_provider(
        requested,
        api_key=api_key,
        model=model,
        base_url=base_url,
        timeout_s=settings.llm_timeout_s,
    )
    return requested, provider
