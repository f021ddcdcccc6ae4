"""Anthropic Messages API provider for summaries and rights scripts."""

from __future__ import annotations

import time

from kyr.core.llm.provider import ProviderError, ProviderResponse


class AnthropicProvider:
    """Claude over the async SDK client.

    SDK retries are disabled: a slow or failing call falls back to canned
    text in the caller instead of holding up an encounter.
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        *,
        timeout_s: float = 20.0,
    ) -> None:
        import anthropic

        self._sdk = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout_s, max_retries=0)
        self.model = model

    async def generate(
        self,
        system_message: str,
        user_message: str,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ) -> ProviderResponse:
        started = time.monotonic()
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_message,
                messages=[{"role": "user", "content": user_message}],
            )
        except self._sdk.APIStatusError as exc:
            raise ProviderError(self.name, f"HTTP {exc.status_code}", status_code=exc.status_code) from exc
        except self._sdk.APIError as exc:
            raise ProviderError(self.name, type(exc).__name__) from exc

        text = "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
        if message.stop_reason == "max_tokens":
            text = text.rstrip() + " ..."
        return ProviderResponse(
            content=text,
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            model=message.model or self.model,
            latency_ms=(time.monotonic() - started) * 1000,
        )
