"""MailboxConnection: one persistent IDLE session per account.

The connection owns its :class:`ConnectionState` and reports state
changes and fetched batches as events through a ``publish`` callable
(the orchestrator's queue).  Errors never escape the connection task;
any failure leads to ``reconnect_pending`` and a fixed-delay retry.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from .config import SyncConfig
from .fetcher import MessageFetcher
from .imap_client import AsyncImapClient, has_changes
from .models import Account, ConnectionState, Message

logger = structlog.get_logger()


@dataclass
class StateChanged:
    account_id: int
    state: ConnectionState


@dataclass
class MessagesFetched:
    account_id: int
    folder: str
    messages: list[Message]


ClientFactory = Callable[[Account, SyncConfig], AsyncImapClient]


class MailboxConnection:
    """Keeps one account's primary folder under IDLE and reports new mail.

    Lifecycle::

        connecting -> ready -> fetching (look-back) -> watching
        watching -> fetching (change notification / resync) -> watching
        any failure -> reconnect_pending -> connecting
        stop() -> disconnected
    """

    def __init__(
        self,
        account: Account,
        config: SyncConfig,
        fetcher: MessageFetcher,
        publish: Callable[[StateChanged | MessagesFetched], None],
        client_factory: ClientFactory = AsyncImapClient,
    ) -> None:
        self._account = account
        self._config = config
        self._fetcher = fetcher
        self._publish = publish
        self._client_factory = client_factory

        self._state = ConnectionState.DISCONNECTED
        self._client: AsyncImapClient | None = None
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._resync_event = asyncio.Event()

    @property
    def account(self) -> Account:
        return self._account

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._resync_event.clear()
        self._task = asyncio.create_task(
            self._run(), name=f"mailbox-{self._account.id}"
        )

    async def stop(self) -> None:
        """Stop the connection; safe to call repeatedly."""
        task, self._task = self._task, None
        self._stop_event.set()
        if self._client is not None:
            self._client.abort()
        if task is not None:
            done, _ = await asyncio.wait({task}, timeout=self._config.shutdown_grace_seconds)
            if not done:
                logger.warning("mailbox_stop_timeout", account_id=self._account.id)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._set_state(ConnectionState.DISCONNECTED)

    def request_resync(self) -> None:
        """Ask for an UNSEEN burst over every watched folder."""
        self._resync_event.set()

    # ------------------------------------------------------------------
    # Connection task
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self._state = state
        self._publish(StateChanged(account_id=self._account.id, state=state))

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            self._set_state(ConnectionState.CONNECTING)
            client = self._client_factory(self._account, self._config)
            self._client = client
            try:
                await self._session(client)
            except Exception as exc:
                if not self._stop_event.is_set():
                    logger.warning(
                        "mailbox_connection_failed",
                        account_id=self._account.id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
            finally:
                self._client = None
                await self._close(client)

            if self._stop_event.is_set():
                break
            self._set_state(ConnectionState.RECONNECT_PENDING)
            logger.info(
                "mailbox_reconnect_scheduled",
                account_id=self._account.id,
                delay_seconds=self._config.reconnect_delay_seconds,
            )
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._config.reconnect_delay_seconds,
                )
            except TimeoutError:
                pass

    async def _close(self, client: AsyncImapClient) -> None:
        if self._stop_event.is_set():
            client.abort()
            return
        try:
            await client.disconnect()
        except Exception as exc:
            logger.debug("mailbox_disconnect_failed", account_id=self._account.id, error=str(exc))
            client.abort()

    async def _session(self, client: AsyncImapClient) -> None:
        await client.connect()
        self._set_state(ConnectionState.READY)

        since = (datetime.now(UTC) - timedelta(days=self._config.lookback_days)).date()
        watchable: list[str] = []
        for folder in self._account.folders:
            if self._stop_event.is_set():
                return
            if await self._burst(client, folder, since=since):
                watchable.append(folder)
        if not watchable:
            raise ConnectionError("none of the watched folders could be opened")

        primary, *secondary = watchable
        while not self._stop_event.is_set():
            if self._resync_event.is_set():
                self._resync_event.clear()
                logger.info("mailbox_resync", account_id=self._account.id)
                for folder in self._account.folders:
                    await self._burst(client, folder)
                continue

            await client.select_folder(primary)
            self._set_state(ConnectionState.WATCHING)
            changed = await self._idle_cycle(client)
            if self._stop_event.is_set():
                return
            if changed:
                await self._burst(client, primary)
            elif not self._resync_event.is_set():
                # Keep-alive between IDLE cycles
                await client.noop()
                for folder in secondary:
                    await self._burst(client, folder)

    async def _idle_cycle(self, client: AsyncImapClient) -> bool:
        """Run one IDLE cycle; return True if the server reported changes."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.idle_timeout_seconds
        changed = False

        await client.idle()
        while not self._stop_event.is_set() and not self._resync_event.is_set():
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            responses = await client.idle_check(min(self._config.idle_check_seconds, remaining))
            if has_changes(responses):
                logger.debug("idle_notification", account_id=self._account.id, responses=len(responses))
                changed = True
                break
        if not self._stop_event.is_set():
            await client.idle_done()
        return changed

    async def _burst(self, client: AsyncImapClient, folder: str, *, since=None) -> bool:
        """Search *folder* (UNSEEN, or SINCE a date) and report what was fetched.

        A command the server refuses for this folder is logged and the
        folder skipped; returns False in that case.  Transport failures
        propagate and end the session.
        """
        self._set_state(ConnectionState.FETCHING)
        try:
            await client.select_folder(folder)
            if since is not None:
                uids = await client.search_since(since)
            else:
                uids = await client.search_unseen()
            messages = await self._fetcher.fetch(client, self._account, folder, uids) if uids else []
        except IMAPClientAbortError:
            raise
        except IMAPClientError as exc:
            logger.warning(
                "folder_sync_failed",
                account_id=self._account.id,
                folder=folder,
                error=str(exc),
            )
            return False
        if not uids:
            return True

        logger.info(
            "mailbox_batch_fetched",
            account_id=self._account.id,
            folder=folder,
            found=len(uids),
            parsed=len(messages),
        )
        if messages:
            self._publish(
                MessagesFetched(account_id=self._account.id, folder=folder, messages=messages)
            )
        return True
