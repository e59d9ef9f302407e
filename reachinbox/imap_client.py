"""Async IMAP client wrapping IMAPClient with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import ssl
from dataclasses import dataclass, field
from datetime import date, datetime

import structlog
from imapclient import IMAPClient, SocketTimeout
from imapclient.exceptions import IMAPClientError

from .config import SyncConfig
from .models import Account

logger = structlog.get_logger()

# Untagged IDLE responses that mean the mailbox changed
CHANGE_RESPONSES = frozenset({b"EXISTS", b"RECENT", b"FETCH"})

# BODY.PEEK leaves \Seen alone; the server answers under BODY[]
FETCH_ITEMS = ["BODY.PEEK[]", "FLAGS", "INTERNALDATE"]
BODY_KEY = b"BODY[]"


@dataclass
class FetchedEmail:
    """Raw email data fetched from IMAP."""

    uid: int
    raw_bytes: bytes | None
    flags: tuple[str, ...] = field(default_factory=tuple)
    internal_date: datetime | None = None


def has_changes(responses: list) -> bool:
    """Return True if any IDLE response reports new or changed messages."""
    return any(
        isinstance(response, tuple)
        and len(response) >= 2
        and response[1] in CHANGE_RESPONSES
        for response in responses
    )


class AsyncImapClient:
    """Async-friendly IMAP client for one account.

    All blocking ``IMAPClient`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop.  UIDs are
    used throughout.
    """

    def __init__(self, account: Account, config: SyncConfig) -> None:
        self._account = account
        self._config = config
        self._conn: IMAPClient | None = None
        self._selected: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket and login."""
        await asyncio.to_thread(self._connect_sync)
        logger.info(
            "imap_connected",
            account_id=self._account.id,
            host=self._account.host,
        )

    def _connect_sync(self) -> None:
        context: ssl.SSLContext | None = None
        if self._account.secure:
            context = ssl.create_default_context()
            if not self._config.ssl_verify:
                context.check_hostname = False
                context.verify_mode = ssl.CERT_NONE
        conn = IMAPClient(
            self._account.host,
            port=self._account.port,
            ssl=self._account.secure,
            ssl_context=context,
            timeout=SocketTimeout(
                connect=self._config.connect_timeout_seconds,
                read=self._config.auth_timeout_seconds,
            ),
        )
        # Keep server timezones on INTERNALDATE values
        conn.normalise_times = False
        conn.login(self._account.username, self._account.password.get_secret_value())
        self._conn = conn

    async def disconnect(self) -> None:
        """Logout and drop the connection."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            self._selected = None
            await asyncio.to_thread(self._logout_sync, conn)
            logger.info("imap_disconnected", account_id=self._account.id)

    @staticmethod
    def _logout_sync(conn: IMAPClient) -> None:
        try:
            conn.logout()
        except (IMAPClientError, OSError):
            conn.shutdown()

    def abort(self) -> None:
        """Close the socket immediately, waking any blocked IDLE wait."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        self._selected = None
        try:
            conn.shutdown()
        except OSError as exc:
            logger.debug("imap_abort_failed", account_id=self._account.id, error=str(exc))

    # ------------------------------------------------------------------
    # Mailbox commands
    # ------------------------------------------------------------------

    def _require(self) -> IMAPClient:
        if self._conn is None:
            raise ConnectionError("IMAP connection is not open")
        return self._conn

    async def select_folder(self, folder: str) -> None:
        """Select *folder* read-only unless it is already selected.

        Read-only access keeps the server from touching the user's flags.
        """
        if self._selected == folder:
            return
        conn = self._require()
        await asyncio.to_thread(conn.select_folder, folder, readonly=True)
        self._selected = folder

    async def search_since(self, since: date) -> list[int]:
        """UIDs of messages in the selected folder dated on/after *since*.

        IMAP date search is day-granular.
        """
        conn = self._require()
        return sorted(await asyncio.to_thread(conn.search, ["SINCE", since]))

    async def search_unseen(self) -> list[int]:
        conn = self._require()
        return sorted(await asyncio.to_thread(conn.search, ["UNSEEN"]))

    async def fetch(self, uids: list[int]) -> list[FetchedEmail]:
        """Fetch body, flags and internal date for *uids* in one round-trip.

        Returns one entry per requested UID, in the given order; UIDs
        the server returned nothing for get ``raw_bytes=None``.
        """
        if not uids:
            return []
        conn = self._require()
        data = await asyncio.to_thread(conn.fetch, uids, FETCH_ITEMS)

        results: list[FetchedEmail] = []
        for uid in uids:
            item = data.get(uid, {})
            flags = tuple(
                f.decode() if isinstance(f, bytes) else str(f)
                for f in item.get(b"FLAGS", ())
            )
            results.append(
                FetchedEmail(
                    uid=uid,
                    raw_bytes=item.get(BODY_KEY),
                    flags=flags,
                    internal_date=item.get(b"INTERNALDATE"),
                )
            )
        logger.debug(
            "imap_fetch_complete",
            account_id=self._account.id,
            folder=self._selected,
            requested=len(uids),
            returned=len(data),
        )
        return results

    async def noop(self) -> None:
        conn = self._require()
        await asyncio.to_thread(conn.noop)

    # ------------------------------------------------------------------
    # IDLE
    # ------------------------------------------------------------------

    async def idle(self) -> None:
        conn = self._require()
        await asyncio.to_thread(conn.idle)

    async def idle_check(self, timeout: float) -> list:
        """Wait up to *timeout* seconds for untagged IDLE responses."""
        conn = self._require()
        return await asyncio.to_thread(conn.idle_check, timeout)

    async def idle_done(self) -> None:
        conn = self._require()
        await asyncio.to_thread(conn.idle_done)
