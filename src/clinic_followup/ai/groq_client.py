"""Groq chat completions for the intent classifier.

Groq serves Llama models with very low latency, which keeps the
call-outcome webhook well inside the voice provider's callback timeout.
Retries on connection errors, 429 and 5xx are left to the SDK.
"""

from __future__ import annotations

import time
from typing import Any

from clinic_followup.core.logging import get_logger

log = get_logger(__name__)


class GroqLanguageModel:
    """Async Groq client returning the raw completion text.

    The SDK client is created on first use, so constructing the model
    does not touch the network or require the key to be valid.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.1,
        max_tokens: int = 512,
        max_retries: int = 2,
        json_mode: bool = True,
    ) -> None:
        """
        Args:
            api_key: Groq API key
            model: Model name
            temperature: Default sampling temperature
            max_tokens: Default completion budget
            max_retries: SDK-level retries
            json_mode: Ask Groq to constrain output to a JSON object
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.json_mode = json_mode

        self._client = None

    def _get_client(self):
        if self._client is None:
            from groq import AsyncGroq

            log.info("Initializing Groq client", model=self.model)
            self._client = AsyncGroq(api_key=self.api_key, max_retries=self.max_retries)
        return self._client

    async def generate_async(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Complete ``prompt`` and return the assistant text ("" if none)."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens if max_tokens is None else max_tokens,
        }
        if self.json_mode:
            request["response_format"] = {"type": "json_object"}

        started = time.monotonic()
        response = await self._get_client().chat.completions.create(**request)

        text = response.choices[0].message.content or ""
        log.debug(
            "Groq completion",
            model=self.model,
            elapsed=round(time.monotonic() - started, 3),
            tokens_used=response.usage.total_tokens if response.usage else None,
        )
        return text

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
