"""Tests for the text-generation client and response post-processing."""

from __future__ import annotations

import asyncio

import pytest

from kyr.core.llm.client import TextGenerationClient, TextGenerationError
from kyr.core.config.settings import Settings
from kyr.core.llm.provider import ProviderError, create_provider, provider_from_settings
from kyr.core.llm.providers.anthropic import AnthropicProvider
from kyr.core.llm.providers.openai import OpenAIProvider
from kyr.core.llm.providers.mock import MockProvider
from kyr.core.llm.response import LEGAL_DISCLAIMER, clean_generated_text, enforce_disclaimer
from kyr.core.llm.system_prompt import build_full_system_prompt


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestClient:
    def test_returns_cleaned_text(self):
        provider = MockProvider("```markdown\nStay calm.\n```")
        client = TextGenerationClient(provider, "mock")
        assert _run(client.complete("## Task", "hello")) == "Stay calm."
        assert provider.last_user_message == "hello"
        assert "## Task" in provider.last_system_message

    def test_provider_error_becomes_text_generation_error(self):
        client = TextGenerationClient(MockProvider(fail_with=RuntimeError("boom")), "mock")
        with pytest.raises(TextGenerationError, match="mock"):
            _run(client.complete("## Task", "hello"))

    def test_empty_output_is_an_error(self):
        client = TextGenerationClient(MockProvider("   "), "mock")
        with pytest.raises(TextGenerationError, match="empty"):
            _run(client.complete("## Task", "hello"))

    def test_provider_name_defaults_to_class(self):
        assert TextGenerationClient(MockProvider()).provider_name == "MockProvider"

    def test_provider_error_carries_status(self):
        failure = ProviderError("anthropic", "HTTP 529", status_code=529)
        client = TextGenerationClient(MockProvider(fail_with=failure), "anthropic")
        with pytest.raises(TextGenerationError) as excinfo:
            _run(client.complete("## Task", "hello"))
        assert excinfo.value.__cause__.status_code == 529

    def test_mock_replays_queued_responses(self):
        provider = MockProvider("fallback", responses=["first", "second"])
        client = TextGenerationClient(provider, "mock")
        texts = [_run(client.complete("## Task", "x")) for _ in range(3)]
        assert texts == ["first", "second", "fallback"]
        assert provider.call_count == 3


class TestCreateProvider:
    def test_mock(self):
        assert isinstance(create_provider("mock"), MockProvider)

    def test_unknown_provider_raises(self):
        with pytest.raises(ValueError):
            create_provider("nope")

    def test_named_providers(self):
        assert isinstance(create_provider("anthropic", api_key="k"), AnthropicProvider)
        openai_provider = create_provider("openai", api_key="k", base_url="https://example.org/v1")
        assert isinstance(openai_provider, OpenAIProvider)
        assert openai_provider.model == "gpt-4o"

    def test_settings_without_key_degrade_to_mock(self):
        settings = Settings(llm_provider="anthropic", anthropic_api_key="")
        name, provider = provider_from_settings(settings)
        assert name == "mock"
        assert isinstance(provider, MockProvider)

    def test_settings_with_key(self):
        settings = Settings(llm_provider="openai", openai_api_key="k", openai_model="gpt-4o-mini")
        name, provider = provider_from_settings(settings)
        assert name == "openai"
        assert provider.model == "gpt-4o-mini"


class TestResponse:
    def test_clean_strips_fences(self):
        assert clean_generated_text("```\ntext\n```") == "text"

    def test_disclaimer_appended_once(self):
        text, flags = enforce_disclaimer("Say: I do not consent to searches.")
        assert text.endswith(LEGAL_DISCLAIMER)
        assert flags == ["disclaimer_appended"]
        again, flags = enforce_disclaimer(text)
        assert again == text
        assert flags == []

    def test_system_prompt_includes_task(self):
        prompt = build_full_system_prompt("## Task: Rights Script")
        assert prompt.endswith("## Task: Rights Script")
