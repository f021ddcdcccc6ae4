"""OpenAI-compatible chat completions provider (OpenAI itself or a gateway such as OpenRouter)."""

from __future__ import annotations

import time

from kyr.core.llm.provider import ProviderError, ProviderResponse


class OpenAIProvider:
    """Chat completions over the async SDK client, retries disabled."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        *,
        timeout_s: float = 20.0,
    ) -> None:
        import openai

        self._sdk = openai
        self.client = openai.AsyncOpenAI(
            api_key=api_key, base_url=base_url, timeout=timeout_s, max_retries=0
        )
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
            completion = await self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": user_message},
                ],
            )
        except self._sdk.APIStatusError as exc:
            raise ProviderError(self.name, f"HTTP {exc.status_code}", status_code=exc.status_code) from exc
        except self._sdk.APIError as exc:
            raise ProviderError(self.name, type(exc).__name__) from exc

        if not completion.choices:
            raise ProviderError(self.name, "no choices returned")
        text = completion.choices[0].message.content or ""
        usage = completion.usage
        return ProviderResponse(
            content=text,
            input_tokens=getattr(usage, "prompt_tokens", 0),
            output_tokens=getattr(usage, "completion_tokens", 0),
            model=completion.model or self.model,
            latency_ms=(time.monotonic() - started) * 1000,
        )
