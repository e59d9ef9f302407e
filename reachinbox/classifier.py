"""LLM-backed message classifier (OpenAI or Anthropic)."""

from __future__ import annotations

import asyncio

import structlog
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from .config import AIConfig
from .interfaces import Classifier
from .llm import LLMProvider, extract_json
from .models import DEFAULT_CLASSIFICATION, Category, Classification

logger = structlog.get_logger()

SYSTEM_PROMPT = "You are an expert email categorization assistant. Always respond with valid JSON."

PROMPT_TEMPLATE = """\
Categorize the following email for a business outreach platform into exactly one of these categories:

1. "Interested" - genuine interest, positive engagement or a potential business opportunity
2. "Meeting Booked" - confirms or schedules a meeting, appointment or call
3. "Not Interested" - disinterest, rejection or a negative response
4. "Spam" - unsolicited promotional content, irrelevant or automated messages
5. "Out of Office" - automated out-of-office or vacation responses

Email:
Subject: {subject}
From: {from_address}
Body: {body}

Respond with a JSON object with the keys "category" (one of the categories above),
"confidence" (a number between 0 and 1) and "reasoning" (a short explanation).
"""


def build_prompt(subject: str, body: str, from_address: str, body_chars: int) -> str:
    return PROMPT_TEMPLATE.format(
        subject=subject,
        from_address=from_address,
        body=body[:body_chars],
    )


def parse_response(content: str) -> Classification:
    """Parse the model's JSON answer; raises ``ValueError`` if unusable."""
    data = extract_json(content)
    return Classification(
        category=Category(data["category"]),
        confidence=data.get("confidence", 0.5),
        reasoning=str(data.get("reasoning", "")),
    )


class LLMClassifier(Classifier):
    """Classifies messages with the configured LLM provider.

    Never raises: any provider, timeout or parse failure yields
    :data:`DEFAULT_CLASSIFICATION`.
    """

    def __init__(
        self,
        config: AIConfig,
        *,
        provider: LLMProvider | None = None,
        openai_client: AsyncOpenAI | None = None,
        anthropic_client: AsyncAnthropic | None = None,
    ) -> None:
        self._config = config
        self._llm = provider or LLMProvider(
            config, openai_client=openai_client, anthropic_client=anthropic_client
        )

    async def classify(self, subject: str, body: str, from_address: str) -> Classification:
        prompt = build_prompt(subject, body, from_address, self._config.body_chars)
        try:
            content = await asyncio.wait_for(
                self._llm.complete(SYSTEM_PROMPT, prompt),
                timeout=self._config.timeout_seconds,
            )
            return parse_response(content)
        except TimeoutError:
            logger.warning("classification_timeout", timeout=self._config.timeout_seconds)
        except Exception as exc:
            logger.warning("classification_failed", error=str(exc))
        return DEFAULT_CLASSIFICATION
