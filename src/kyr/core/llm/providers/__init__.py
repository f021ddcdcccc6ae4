"""Text-generation provider implementations."""

from kyr.core.llm.providers.anthropic import AnthropicProvider
from kyr.core.llm.providers.mock import MockProvider
from kyr.core.llm.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "MockProvider", "OpenAIProvider"]
