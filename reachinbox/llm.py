"""Shared access to the configured LLM providers (OpenAI or Anthropic)."""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from .config import AIConfig

logger = structlog.get_logger()

_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(content: str) -> dict[str, Any]:
    """Return the JSON object embedded in a model answer; raises ``ValueError``."""
    match = _JSON_RE.search(content)
    if match is None:
        raise ValueError("no JSON object in response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("response JSON is not an object")
    return data


class LLMProvider:
    """Sends a system and user prompt to one provider and returns the text.

    The preferred provider is used when its key is set; otherwise the
    other configured provider is tried.  Clients can be injected, which
    is how tests replace the SDKs.
    """

    def __init__(
        self,
        config: AIConfig,
        *,
        openai_client: AsyncOpenAI | None = None,
        anthropic_client: AsyncAnthropic | None = None,
    ) -> None:
        self._config = config
        self._openai = openai_client
        self._anthropic = anthropic_client
        if self._openai is None and config.openai_api_key:
            self._openai = AsyncOpenAI(api_key=config.openai_api_key.get_secret_value())
        if self._anthropic is None and config.anthropic_api_key:
            self._anthropic = AsyncAnthropic(api_key=config.anthropic_api_key.get_secret_value())

        if not self.configured:
            logger.warning("llm_provider_unconfigured")

    @property
    def configured(self) -> bool:
        return self._openai is not None or self._anthropic is not None

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        temperature = self._config.temperature if temperature is None else temperature
        max_tokens = self._config.max_tokens if max_tokens is None else max_tokens

        if self._config.provider == "openai" and self._openai is not None:
            return await self._complete_openai(system, prompt, temperature, max_tokens)
        if self._anthropic is not None:
            return await self._complete_anthropic(system, prompt, temperature, max_tokens)
        if self._openai is not None:
            return await self._complete_openai(system, prompt, temperature, max_tokens)
        raise RuntimeError("No AI provider configured")

    async def _complete_openai(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        assert self._openai is not None
        response = await self._openai.chat.completions.create(
            model=self._config.openai_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ValueError("empty response from OpenAI")
        return content

    async def _complete_anthropic(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        assert self._anthropic is not None
        response = await self._anthropic.messages.create(
            model=self._config.anthropic_model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        block = response.content[0] if response.content else None
        if block is None or block.type != "text":
            raise ValueError("unexpected response type from Anthropic")
        return block.text

    async def close(self) -> None:
        """Release the SDK HTTP clients."""
        if self._openai is not None:
            await self._openai.close()
        if self._anthropic is not None:
            await self._anthropic.close()
