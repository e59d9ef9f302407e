"""Shared test fixtures, sample EML builders and in-memory collaborators."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, date, datetime
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from reachinbox.config import RetryConfig, SyncConfig
from reachinbox.imap_client import FetchedEmail
from reachinbox.interfaces import MessageStore, UpdatePublisher
from reachinbox.models import Account, AccountConfig, Message, NewMessageEvent


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(
        interval_minutes=60.0,
        reconnect_delay_seconds=0.05,
        lookback_days=30,
        max_batch_size=50,
        idle_timeout_seconds=0.5,
        idle_check_seconds=0.02,
        shutdown_grace_seconds=1.0,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.05,
        multiplier=2.0,
    )


@pytest.fixture
def account() -> Account:
    return make_account(1)


def make_account(account_id: int, *, is_active: bool = True, folders: list[str] | None = None) -> Account:
    return Account(
        id=account_id,
        name=f"account-{account_id}",
        host="imap.test.com",
        port=993,
        secure=True,
        username=f"user{account_id}@test.com",
        password="testpass",
        folders=folders or ["INBOX"],
        is_active=is_active,
    )


def make_account_config(*, name: str = "sales", is_active: bool = True) -> AccountConfig:
    return AccountConfig(
        name=name,
        host="imap.test.com",
        username=f"{name}@test.com",
        password="s3cret",
        is_active=is_active,
    )


def make_message(message_id: str = "<m-1@example.com>", **overrides) -> Message:
    values = {
        "id": message_id,
        "account_id": 1,
        "account_name": "account-1",
        "folder": "INBOX",
        "uid": 1,
        "subject": "Pricing question",
        "from_email": "lead@example.com",
        "from_name": "Lead Person",
        "to_emails": ["sales@test.com"],
        "date": datetime(2025, 6, 1, 12, 0, tzinfo=UTC),
        "received_date": datetime(2025, 6, 1, 12, 1, tzinfo=UTC),
        "body_text": "I'd love to learn more about your product.",
    }
    values.update(overrides)
    return Message(**values)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it is true or fail after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "Sender Name <sender@example.com>",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str | None = "<test-001@example.com>",
    date_header: str | None = "Mon, 02 Jun 2025 12:00:00 +0000",
    cc: str | None = None,
    bcc: str | None = None,
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    if message_id:
        msg["Message-ID"] = message_id
    if date_header:
        msg["Date"] = date_header
    if cc:
        msg["Cc"] = cc
    if bcc:
        msg["Bcc"] = bcc
    return msg.as_bytes()


def build_html_email(*, body_html: str = "<p>Hello <b>there</b></p><p>Second line</p>") -> bytes:
    msg = MIMEText(body_html, "html")
    msg["Subject"] = "HTML Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<html-001@example.com>"
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def build_multipart_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with text, HTML, and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"

    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return build_plain_email()


@pytest.fixture
def html_eml_bytes() -> bytes:
    return build_html_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )


# ------------------------------------------------------------------
# In-memory collaborators
# ------------------------------------------------------------------


class FakeImapClient:
    """Scriptable stand-in for :class:`AsyncImapClient`.

    ``mailboxes`` maps folder -> {uid: raw bytes}; ``unseen`` maps
    folder -> UIDs returned by an UNSEEN search.  Push IDLE responses
    onto ``notifications`` to simulate server pushes.
    """

    def __init__(
        self,
        mailboxes: dict[str, dict[int, bytes | None]] | None = None,
        *,
        connect_error: Exception | None = None,
    ) -> None:
        self.mailboxes = mailboxes if mailboxes is not None else {"INBOX": {}}
        self.unseen: dict[str, set[int]] = {}
        self.connect_error = connect_error
        self.select_errors: dict[str, Exception] = {}
        self.notifications: asyncio.Queue = asyncio.Queue()
        self.calls: list[tuple] = []
        self.selected: str | None = None
        self.connected = False
        self.aborted = False

    async def connect(self) -> None:
        self.calls.append(("connect",))
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def disconnect(self) -> None:
        self.calls.append(("disconnect",))
        self.connected = False

    def abort(self) -> None:
        self.aborted = True
        self.connected = False

    async def select_folder(self, folder: str) -> None:
        self.calls.append(("select", folder))
        if folder in self.select_errors:
            raise self.select_errors[folder]
        self.selected = folder

    async def search_since(self, since: date) -> list[int]:
        self.calls.append(("search_since", self.selected))
        return sorted(self.mailboxes.get(self.selected, {}))

    async def search_unseen(self) -> list[int]:
        self.calls.append(("search_unseen", self.selected))
        return sorted(self.unseen.get(self.selected, set()))

    async def fetch(self, uids: list[int]) -> list[FetchedEmail]:
        self.calls.append(("fetch", self.selected, tuple(uids)))
        box = self.mailboxes.get(self.selected, {})
        return [FetchedEmail(uid=uid, raw_bytes=box.get(uid)) for uid in uids]

    async def noop(self) -> None:
        self.calls.append(("noop",))

    async def idle(self) -> None:
        self.calls.append(("idle",))

    async def idle_check(self, timeout: float) -> list:
        if self.aborted:
            raise OSError("socket closed")
        try:
            return await asyncio.wait_for(self.notifications.get(), timeout=timeout)
        except TimeoutError:
            return []

    async def idle_done(self) -> None:
        self.calls.append(("idle_done",))

    def deliver(self, folder: str, uid: int, raw: bytes) -> None:
        """Add an unseen message and push an EXISTS notification."""
        self.mailboxes.setdefault(folder, {})[uid] = raw
        self.unseen.setdefault(folder, set()).add(uid)
        self.notifications.put_nowait([(uid, b"EXISTS")])


class InMemoryStore(MessageStore):
    def __init__(self, accounts: list[Account] | None = None) -> None:
        self.accounts: dict[int, Account] = {a.id: a for a in accounts or []}
        self.messages: dict[str, Message] = {}
        self.load_error: Exception | None = None
        self.upsert_error: Exception | None = None

    async def load_active_accounts(self) -> list[Account]:
        if self.load_error is not None:
            raise self.load_error
        return list(self.accounts.values())

    async def insert_account(self, config: AccountConfig) -> int:
        account_id = max(self.accounts, default=0) + 1
        self.accounts[account_id] = Account.model_validate({**config.model_dump(), "id": account_id})
        return account_id

    async def upsert_message(self, message: Message) -> None:
        if self.upsert_error is not None:
            raise self.upsert_error
        self.messages[message.id] = message

    async def message_exists(self, message_id: str) -> bool:
        return message_id in self.messages

    async def ping(self) -> bool:
        return True


class RecordingPublisher(UpdatePublisher):
    def __init__(self) -> None:
        self.events: list[NewMessageEvent] = []

    async def publish(self, event: NewMessageEvent) -> None:
        self.events.append(event)
