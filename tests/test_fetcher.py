"""Tests for reachinbox.fetcher."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from reachinbox.config import SyncConfig
from reachinbox.fetcher import MessageFetcher, fallback_message_id
from reachinbox.imap_client import FetchedEmail
from reachinbox.models import Account
from reachinbox.parser import MimeParser, ParsedEmail
from tests.conftest import FakeImapClient, build_plain_email


class BrokenOnMarkerParser(MimeParser):
    """Fails on payloads containing a marker, parses everything else."""

    def parse(self, raw_bytes: bytes) -> ParsedEmail:
        if b"UNPARSEABLE" in raw_bytes:
            raise ValueError("malformed MIME structure")
        return super().parse(raw_bytes)


def _client(messages: dict[int, bytes | None], folder: str = "INBOX") -> FakeImapClient:
    client = FakeImapClient({folder: messages})
    client.selected = folder
    return client


class TestMessageFetcher:
    @pytest.mark.asyncio
    async def test_fetches_in_uid_order(self, sync_config: SyncConfig, account: Account):
        client = _client({
            3: build_plain_email(message_id="<c@x>"),
            1: build_plain_email(message_id="<a@x>"),
            2: build_plain_email(message_id="<b@x>"),
        })
        messages = await MessageFetcher(sync_config).fetch(client, account, "INBOX", [3, 1, 2])
        assert [m.uid for m in messages] == [1, 2, 3]
        assert [m.id for m in messages] == ["<a@x>", "<b@x>", "<c@x>"]
        assert messages[0].account_id == account.id
        assert messages[0].account_name == account.name
        assert messages[0].folder == "INBOX"

    @pytest.mark.asyncio
    async def test_unparseable_message_is_skipped(self, sync_config: SyncConfig, account: Account):
        client = _client({
            1: build_plain_email(message_id="<one@x>"),
            2: build_plain_email(message_id="<two@x>", body="UNPARSEABLE"),
            3: build_plain_email(message_id="<three@x>"),
        })
        fetcher = MessageFetcher(sync_config, parser=BrokenOnMarkerParser())
        messages = await fetcher.fetch(client, account, "INBOX", [1, 2, 3])
        assert [m.id for m in messages] == ["<one@x>", "<three@x>"]

    @pytest.mark.asyncio
    async def test_missing_body_is_skipped(self, sync_config: SyncConfig, account: Account):
        client = _client({1: None, 2: build_plain_email(message_id="<two@x>")})
        messages = await MessageFetcher(sync_config).fetch(client, account, "INBOX", [1, 2])
        assert [m.uid for m in messages] == [2]

    @pytest.mark.asyncio
    async def test_caps_to_most_recent_uids(self, account: Account):
        config = SyncConfig(max_batch_size=5)
        client = _client({uid: build_plain_email(message_id=f"<{uid}@x>") for uid in range(1, 21)})
        messages = await MessageFetcher(config).fetch(client, account, "INBOX", list(range(1, 21)))
        assert [m.uid for m in messages] == [16, 17, 18, 19, 20]
        assert client.calls[-1] == ("fetch", "INBOX", (16, 17, 18, 19, 20))

    @pytest.mark.asyncio
    async def test_empty_uid_list(self, sync_config: SyncConfig, account: Account):
        client = _client({})
        assert await MessageFetcher(sync_config).fetch(client, account, "INBOX", []) == []
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_missing_message_id_uses_stable_fallback(self, sync_config: SyncConfig, account: Account):
        client = _client({7: build_plain_email(message_id=None)})
        first = await MessageFetcher(sync_config).fetch(client, account, "INBOX", [7])
        second = await MessageFetcher(sync_config).fetch(client, account, "INBOX", [7])
        assert first[0].id == fallback_message_id(account.id, "INBOX", 7)
        assert first[0].id == second[0].id

    @pytest.mark.asyncio
    async def test_derived_fields(self, sync_config: SyncConfig, account: Account):
        class FlaggedClient(FakeImapClient):
            async def fetch(self, uids):
                return [
                    FetchedEmail(
                        uid=9,
                        raw_bytes=build_plain_email(body="Short body", date_header=None),
                        flags=("\\Seen", "\\Flagged"),
                        internal_date=datetime(2025, 5, 30, 8, 0),
                    )
                ]

        client = FlaggedClient()
        [message] = await MessageFetcher(sync_config).fetch(client, account, "INBOX", [9])
        assert message.is_read is True
        assert message.is_important is True
        assert message.flags == ["\\Seen", "\\Flagged"]
        # No Date header: falls back to INTERNALDATE, treated as UTC
        assert message.date == datetime(2025, 5, 30, 8, 0, tzinfo=UTC)
        assert message.received_date == message.date
        assert message.size == len(message.body_text)

    @pytest.mark.asyncio
    async def test_date_falls_back_to_fetch_time(self, sync_config: SyncConfig, account: Account):
        client = _client({1: build_plain_email(date_header=None)})
        before = datetime.now(UTC)
        [message] = await MessageFetcher(sync_config).fetch(client, account, "INBOX", [1])
        assert message.date >= before
        assert message.is_read is False


def test_fallback_id_differs_per_folder():
    assert fallback_message_id(1, "INBOX", 5) != fallback_message_id(1, "Sent", 5)
