"""
Text-completion collaborator.

The structured parser only needs ``complete(prompt) -> str``. The OpenAI
adapter below is the production implementation; tests substitute fakes.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

import openai
from openai import OpenAI

from splitbite.errors import CompletionTransportError, ConfigurationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a precise receipt parser. Return only valid JSON with the exact "
    "structure requested. Do not include any explanation or additional text."
)


class TextCompletionClient(Protocol):
    def complete(self, prompt: str) -> str:
        ...


class OpenAICompletionClient:
    """Chat-completions client with a fixed system prompt."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.1,
        max_tokens: int = 2000,
        timeout: float = 30.0,
        client: Optional[OpenAI] = None,
    ) -> None:
        if not api_key and client is None:
            raise ConfigurationError(
                "LLM_API_KEY is required when LLM_PROVIDER is 'openai' "
                "(set LLM_PROVIDER=none to use only the fallback parser)"
            )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        # SDK-level retries off: retry policy is the caller's concern
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def complete(self, prompt: str) -> str:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.AuthenticationError as exc:
            raise ConfigurationError(f"LLM credentials rejected: {exc}") from exc
        except openai.OpenAIError as exc:
            raise CompletionTransportError(f"Text completion failed: {exc}") from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise CompletionTransportError("No response content from text completion")
        logger.debug("Completion response: %d chars", len(content))
        return content
