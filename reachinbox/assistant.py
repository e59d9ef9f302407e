"""Reply suggestions grounded on similar past messages, and key-information extraction."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from .config import AIConfig
from .filters import CategoryFilter
from .interfaces import SemanticStore
from .llm import LLMProvider, extract_json
from .models import (
    DEFAULT_KEY_INFORMATION,
    FALLBACK_REPLY,
    Category,
    KeyInformation,
    OriginalEmail,
    ReplySuggestion,
)

logger = structlog.get_logger()

REPLY_SYSTEM_PROMPT = (
    "You are an expert email reply generator. Always respond with valid JSON and professional tone."
)
EXTRACT_SYSTEM_PROMPT = "You are an expert email analyzer. Always respond with valid JSON."

# Characters of each similar message shown in the reply context
CONTEXT_PREVIEW_CHARS = 200

REPLY_PROMPT_TEMPLATE = """\
Generate a professional email reply for the email below.

Original Email:
Subject: {subject}
From: {from_email}
Body: {body}

Context from similar conversations:
{context}

Product Information:
{product_info}

Outreach Agenda:
{agenda}

Guidelines:
- Be professional, friendly and concise
- Address the sender's points directly
- Use the product information where it is relevant
- Move the conversation towards the outreach agenda
- Keep the reply to 2-3 paragraphs

Respond with a JSON object with the keys "suggested_reply" (the reply text),
"confidence" (a number between 0 and 1) and "reasoning" (a short explanation).
"""

EXTRACT_PROMPT_TEMPLATE = """\
Extract the key information from the email below.

Subject: {subject}
Body: {body}

Respond with a JSON object with the keys "key_points" (a list of short strings),
"sentiment" ("positive", "neutral" or "negative"), "urgency" ("low", "medium" or "high")
and "action_required" (true or false).
"""


def build_context(matches: list[dict[str, Any]]) -> str:
    """Render similar messages as subject plus a body preview, one block each."""
    blocks = []
    for match in matches:
        metadata = match.get("metadata") or {}
        document = match.get("document") or ""
        blocks.append(
            f"Subject: {metadata.get('subject', '')}\nBody: {document[:CONTEXT_PREVIEW_CHARS]}..."
        )
    return "\n\n".join(blocks)


def parse_reply(content: str) -> ReplySuggestion:
    """Parse the model's reply JSON; raises ``ValueError`` if unusable."""
    data = extract_json(content)
    reply = str(data.get("suggested_reply") or "").strip()
    if not reply:
        raise ValueError("response has no suggested_reply")
    return ReplySuggestion(
        suggested_reply=reply,
        confidence=data.get("confidence", 0.5),
        reasoning=str(data.get("reasoning", "")),
    )


def parse_key_information(content: str) -> KeyInformation:
    return KeyInformation.model_validate(extract_json(content))


class ReplySuggester:
    """Drafts replies with context retrieved from the semantic store.

    Context is the closest earlier messages labelled Interested.  Both
    operations fall back to fixed answers instead of raising when the
    provider is unavailable or answers with something unusable.
    """

    def __init__(
        self,
        config: AIConfig,
        semantic_store: SemanticStore,
        *,
        provider: LLMProvider | None = None,
    ) -> None:
        self._config = config
        self._semantic_store = semantic_store
        self._llm = provider or LLMProvider(config)

    async def similar_context(self, subject: str, body: str) -> list[dict[str, Any]]:
        return await self._semantic_store.search_similar(
            f"{subject} {body}",
            limit=self._config.reply_context_limit,
            filters=[CategoryFilter(category=Category.INTERESTED)],
        )

    async def suggest_reply(
        self,
        email: OriginalEmail,
        *,
        product_info: str,
        agenda: str,
    ) -> ReplySuggestion:
        try:
            matches = await self.similar_context(email.subject, email.body)
        except Exception as exc:
            logger.warning("reply_context_failed", error=str(exc))
            matches = []
        context = build_context(matches)

        prompt = REPLY_PROMPT_TEMPLATE.format(
            subject=email.subject,
            from_email=email.from_email,
            body=email.body,
            context=context or "None",
            product_info=product_info,
            agenda=agenda,
        )
        try:
            content = await asyncio.wait_for(
                self._llm.complete(
                    REPLY_SYSTEM_PROMPT,
                    prompt,
                    temperature=self._config.reply_temperature,
                    max_tokens=self._config.reply_max_tokens,
                ),
                timeout=self._config.timeout_seconds,
            )
            suggestion = parse_reply(content)
        except TimeoutError:
            logger.warning("reply_suggestion_timeout", timeout=self._config.timeout_seconds)
            suggestion = FALLBACK_REPLY
        except Exception as exc:
            logger.warning("reply_suggestion_failed", error=str(exc))
            suggestion = FALLBACK_REPLY

        return suggestion.model_copy(
            update={"context_count": len(matches), "context_length": len(context)}
        )

    async def extract_key_information(self, subject: str, body: str) -> KeyInformation:
        prompt = EXTRACT_PROMPT_TEMPLATE.format(
            subject=subject,
            body=body[: self._config.extract_body_chars],
        )
        try:
            content = await asyncio.wait_for(
                self._llm.complete(
                    EXTRACT_SYSTEM_PROMPT,
                    prompt,
                    max_tokens=self._config.extract_max_tokens,
                ),
                timeout=self._config.timeout_seconds,
            )
            return parse_key_information(content)
        except TimeoutError:
            logger.warning("key_information_timeout", timeout=self._config.timeout_seconds)
        except Exception as exc:
            logger.warning("key_information_failed", error=str(exc))
        return DEFAULT_KEY_INFORMATION
