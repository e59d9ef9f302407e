"""Tests for reachinbox.live (LiveUpdateHub)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from reachinbox.live import LiveUpdateHub
from reachinbox.models import Category, Classification, NewMessageEvent
from tests.conftest import make_message


def _websocket(*, fail: bool = False) -> MagicMock:
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.send_json = AsyncMock(side_effect=RuntimeError("closed") if fail else None)
    return ws


def _event() -> NewMessageEvent:
    message = make_message().with_classification(Classification(category=Category.INTERESTED, confidence=0.8))
    return NewMessageEvent.from_message(message)


class TestLiveUpdateHub:
    @pytest.mark.asyncio
    async def test_connect_accepts_and_tracks(self):
        hub = LiveUpdateHub()
        ws = _websocket()
        await hub.connect(ws)
        ws.accept.assert_awaited_once()
        assert hub.client_count == 1

        await hub.disconnect(ws)
        assert hub.client_count == 0

    @pytest.mark.asyncio
    async def test_publish_broadcasts_new_email(self):
        hub = LiveUpdateHub()
        first, second = _websocket(), _websocket()
        await hub.connect(first)
        await hub.connect(second)

        await hub.publish(_event())

        for ws in (first, second):
            payload = ws.send_json.call_args.args[0]
            assert payload["type"] == "newEmail"
            assert payload["data"]["id"] == "<m-1@example.com>"
            assert payload["data"]["label"] == "Interested"
            assert payload["data"]["confidence"] == 0.8

    @pytest.mark.asyncio
    async def test_failed_client_dropped(self):
        hub = LiveUpdateHub()
        good, bad = _websocket(), _websocket(fail=True)
        await hub.connect(good)
        await hub.connect(bad)

        await hub.publish(_event())

        good.send_json.assert_awaited_once()
        assert hub.client_count == 1

        await hub.publish(_event())
        assert bad.send_json.await_count == 1
        assert good.send_json.await_count == 2

    @pytest.mark.asyncio
    async def test_publish_without_clients(self):
        await LiveUpdateHub().publish(_event())  # should not raise
