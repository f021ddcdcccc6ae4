"""Offline provider used when no API key is configured, and in tests."""

from __future__ import annotations

from collections import deque

from kyr.core.llm.provider import ProviderResponse


class MockProvider:
    """Replays canned completions.

    ``responses`` are consumed in order; once exhausted (or when none are
    given) every call returns ``response_content``. ``fail_with`` makes
    every call raise instead.
    """

    name = "mock"

    def __init__(
        self,
        response_content: str = "Mock generated text.",
        fail_with: Exception | None = None,
        responses: list[str] | None = None,
    ) -> None:
        self.response_content = response_content
        self.fail_with = fail_with
        self._queued = deque(responses or ())
        self.prompts: list[tuple[str, str]] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    @property
    def last_system_message(self) -> str:
        return self.prompts[-1][0] if self.prompts else ""

    @property
    def last_user_message(self) -> str:
        return self.prompts[-1][1] if self.prompts else ""

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        self.prompts.append((system_message, user_message))
        if self.fail_with is not None:
            raise self.fail_with
        text = self._queued.popleft() if self._queued else self.response_content
        # Word count stands in for tokens; the budget still caps output.
        words = text.split()
        return ProviderResponse(
            content=" ".join(words[:max_tokens]) if len(words) > max_tokens else text,
            input_tokens=len(system_message.split()) + len(user_message.split()),
            output_tokens=min(len(words), max_tokens),
            model="mock",
            latency_ms=0.0,
        )
