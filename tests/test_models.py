"""Tests for reachinbox.models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from reachinbox.models import (
    DEFAULT_CLASSIFICATION,
    AccountConfig,
    Category,
    Classification,
    NewMessageEvent,
)
from tests.conftest import make_message


class TestAccountConfig:
    def test_defaults(self):
        cfg = AccountConfig(name="a", host="imap.x", username="u", password="p")
        assert cfg.port == 993
        assert cfg.secure is True
        assert cfg.folders == ["INBOX"]
        assert cfg.is_active is True

    def test_empty_folders_rejected(self):
        with pytest.raises(ValidationError):
            AccountConfig(name="a", host="imap.x", username="u", password="p", folders=[])

    def test_password_not_serialized_in_clear(self):
        cfg = AccountConfig(name="a", host="imap.x", username="u", password="hunter2")
        assert "hunter2" not in cfg.model_dump_json()
        assert "hunter2" not in repr(cfg)


class TestClassification:
    @pytest.mark.parametrize(("raw", "expected"), [(1.7, 1.0), (-0.2, 0.0), (0.42, 0.42)])
    def test_confidence_clamped(self, raw, expected):
        assert Classification(category=Category.SPAM, confidence=raw).confidence == expected

    @pytest.mark.parametrize("raw", [float("nan"), float("inf"), "-inf"])
    def test_non_finite_confidence_rejected(self, raw):
        with pytest.raises(ValidationError):
            Classification(category=Category.SPAM, confidence=raw)

    def test_default(self):
        assert DEFAULT_CLASSIFICATION.category == Category.NOT_INTERESTED
        assert DEFAULT_CLASSIFICATION.confidence == 0.5

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            Classification(category="Maybe", confidence=0.5)


class TestMessage:
    def test_unclassified_by_default(self):
        msg = make_message()
        assert msg.ai_category is None
        assert msg.ai_confidence is None

    def test_with_classification_returns_copy(self):
        msg = make_message()
        labelled = msg.with_classification(Classification(category=Category.INTERESTED, confidence=0.9))
        assert labelled.ai_category == Category.INTERESTED
        assert labelled.ai_confidence == 0.9
        assert msg.ai_category is None
        assert labelled.updated_at >= msg.updated_at


class TestNewMessageEvent:
    def test_from_message(self):
        msg = make_message().with_classification(Classification(category=Category.SPAM, confidence=0.8))
        event = NewMessageEvent.from_message(msg)
        assert event.id == msg.id
        assert event.from_email == "lead@example.com"
        assert event.label == Category.SPAM
        assert event.model_dump(mode="json")["label"] == "Spam"
