"""Tests for reachinbox.classifier."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from reachinbox.classifier import LLMClassifier, build_prompt, parse_response
from reachinbox.config import AIConfig
from reachinbox.models import Category


def _openai_client(content: str | None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    )
    return client


def _anthropic_client(text: str) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])
    )
    return client


@pytest.fixture
def ai_config() -> AIConfig:
    return AIConfig(provider="openai", timeout_seconds=1.0)


class TestParseResponse:
    def test_plain_json(self):
        result = parse_response('{"category": "Meeting Booked", "confidence": 0.8, "reasoning": "slot confirmed"}')
        assert result.category == Category.MEETING_BOOKED
        assert result.confidence == 0.8
        assert result.reasoning == "slot confirmed"

    def test_json_wrapped_in_prose(self):
        result = parse_response('Sure! ```json\n{"category": "Spam", "confidence": 0.7}\n```')
        assert result.category == Category.SPAM

    def test_confidence_clamped(self):
        assert parse_response('{"category": "Spam", "confidence": 3}').confidence == 1.0

    def test_nan_confidence_rejected(self):
        with pytest.raises(ValueError):
            parse_response('{"category": "Interested", "confidence": NaN}')

    def test_unknown_category(self):
        with pytest.raises(ValueError):
            parse_response('{"category": "Warm Lead", "confidence": 0.5}')

    def test_no_json(self):
        with pytest.raises(ValueError):
            parse_response("I think this is spam.")


class TestBuildPrompt:
    def test_truncates_body(self):
        prompt = build_prompt("Hi", "x" * 5000, "a@b.com", 1000)
        assert "x" * 1000 in prompt
        assert "x" * 1001 not in prompt
        assert "From: a@b.com" in prompt


class TestLLMClassifier:
    @pytest.mark.asyncio
    async def test_openai(self, ai_config: AIConfig):
        client = _openai_client('{"category": "Interested", "confidence": 0.9, "reasoning": "wants pricing"}')
        classifier = LLMClassifier(ai_config, openai_client=client)

        result = await classifier.classify("Pricing", "Can you send pricing?", "lead@x.com")

        assert result.category == Category.INTERESTED
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_anthropic_preferred(self):
        config = AIConfig(provider="anthropic")
        openai = _openai_client('{"category": "Spam", "confidence": 0.9}')
        anthropic = _anthropic_client('{"category": "Out of Office", "confidence": 0.95}')
        classifier = LLMClassifier(config, openai_client=openai, anthropic_client=anthropic)

        result = await classifier.classify("Away", "I am out of office", "bot@x.com")

        assert result.category == Category.OUT_OF_OFFICE
        openai.chat.completions.create.assert_not_awaited()
        assert anthropic.messages.create.call_args.kwargs["model"] == "claude-3-sonnet-20240229"

    @pytest.mark.asyncio
    async def test_falls_back_to_other_provider(self):
        config = AIConfig(provider="openai")
        anthropic = _anthropic_client('{"category": "Spam", "confidence": 0.6}')
        classifier = LLMClassifier(config, anthropic_client=anthropic)
        assert (await classifier.classify("s", "b", "f")).category == Category.SPAM

    @pytest.mark.asyncio
    async def test_unconfigured_returns_default(self, ai_config: AIConfig):
        result = await LLMClassifier(ai_config).classify("s", "b", "f")
        assert result.category == Category.NOT_INTERESTED
        assert result.confidence == 0.5

    @pytest.mark.asyncio
    async def test_provider_error_returns_default(self, ai_config: AIConfig):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
        result = await LLMClassifier(ai_config, openai_client=client).classify("s", "b", "f")
        assert result.category == Category.NOT_INTERESTED

    @pytest.mark.asyncio
    async def test_empty_response_returns_default(self, ai_config: AIConfig):
        result = await LLMClassifier(ai_config, openai_client=_openai_client(None)).classify("s", "b", "f")
        assert result.category == Category.NOT_INTERESTED

    @pytest.mark.asyncio
    async def test_timeout_returns_default(self):
        config = AIConfig(provider="openai", timeout_seconds=0.05)

        async def _slow(**kwargs):
            await asyncio.sleep(1.0)

        client = MagicMock()
        client.chat.completions.create = _slow
        result = await LLMClassifier(config, openai_client=client).classify("s", "b", "f")
        assert result.category == Category.NOT_INTERESTED
        assert result.confidence == 0.5
