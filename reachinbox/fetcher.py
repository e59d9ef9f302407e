"""Turns UID batches into parsed :class:`Message` records."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

import structlog

from .config import SyncConfig
from .imap_client import AsyncImapClient, FetchedEmail
from .models import Account, Message
from .parser import MimeParser

logger = structlog.get_logger()

MESSAGE_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "reachinbox:message")

SEEN_FLAG = "\\Seen"
FLAGGED_FLAG = "\\Flagged"


def fallback_message_id(account_id: int, folder: str, uid: int) -> str:
    """Deterministic id for messages without a Message-ID header."""
    return str(uuid.uuid5(MESSAGE_ID_NAMESPACE, f"{account_id}:{folder}:{uid}"))


class MessageFetcher:
    """Fetches and parses a bounded batch of UIDs.

    A single UID that returns no data or fails to parse is logged and
    skipped; the rest of the batch is still returned.  Transport errors
    during the fetch round-trip propagate to the caller.
    """

    def __init__(self, config: SyncConfig, parser: MimeParser | None = None) -> None:
        self._config = config
        self._parser = parser or MimeParser()

    async def fetch(
        self,
        client: AsyncImapClient,
        account: Account,
        folder: str,
        uids: list[int],
    ) -> list[Message]:
        if not uids:
            return []
        # Most recent UIDs only
        batch = sorted(uids)[-self._config.max_batch_size:]
        if len(batch) < len(uids):
            logger.info(
                "fetch_batch_capped",
                account_id=account.id,
                folder=folder,
                found=len(uids),
                fetching=len(batch),
            )

        fetched = await client.fetch(batch)
        now = datetime.now(UTC)
        messages: list[Message] = []
        for item in fetched:
            if not item.raw_bytes:
                logger.warning("fetch_missing_body", account_id=account.id, folder=folder, uid=item.uid)
                continue
            try:
                messages.append(self._build(account, folder, item, now))
            except Exception:
                logger.exception("message_parse_failed", account_id=account.id, folder=folder, uid=item.uid)

        return messages

    def _build(self, account: Account, folder: str, item: FetchedEmail, now: datetime) -> Message:
        assert item.raw_bytes is not None
        parsed = self._parser.parse(item.raw_bytes)
        internal_date = _aware(item.internal_date)

        return Message(
            id=parsed.message_id or fallback_message_id(account.id, folder, item.uid),
            account_id=account.id,
            account_name=account.name,
            folder=folder,
            uid=item.uid,
            subject=parsed.subject,
            from_email=parsed.from_address,
            from_name=parsed.from_name,
            to_emails=parsed.to_addresses,
            cc_emails=parsed.cc_addresses,
            bcc_emails=parsed.bcc_addresses,
            date=parsed.date or internal_date or now,
            received_date=internal_date or now,
            size=len(parsed.body_text),
            flags=list(item.flags),
            body_text=parsed.body_text,
            body_html=parsed.body_html,
            attachments=parsed.attachments,
            is_read=SEEN_FLAG in item.flags,
            is_important=FLAGGED_FLAG in item.flags,
        )


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
