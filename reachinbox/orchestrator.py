"""SyncOrchestrator: owns accounts and connections, dispatches events."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from .config import SyncConfig
from .connection import MailboxConnection, MessagesFetched, StateChanged
from .fetcher import MessageFetcher
from .interfaces import MessageStore, UpdatePublisher
from .models import Account, AccountConfig, ConnectionState, NewMessageEvent
from .pipeline import DownstreamPipeline

logger = structlog.get_logger()

_STOP = object()

ConnectionFactory = Callable[..., MailboxConnection]


class SyncOrchestrator:
    """Manages one :class:`MailboxConnection` per active account.

    Connections push :class:`StateChanged` and :class:`MessagesFetched`
    events onto a queue; a single dispatcher task consumes them, so
    messages are de-duplicated and forwarded strictly one at a time.
    The account and connection maps are only mutated by the public
    methods of this class.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: MessageStore,
        pipeline: DownstreamPipeline,
        publisher: UpdatePublisher,
        *,
        fetcher: MessageFetcher | None = None,
        connection_factory: ConnectionFactory = MailboxConnection,
    ) -> None:
        self._config = config
        self._store = store
        self._pipeline = pipeline
        self._publisher = publisher
        self._fetcher = fetcher or MessageFetcher(config)
        self._connection_factory = connection_factory

        self._accounts: dict[int, Account] = {}
        self._connections: dict[int, MailboxConnection] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._dispatcher: asyncio.Task | None = None
        self._timer: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def accounts(self) -> dict[int, Account]:
        return dict(self._accounts)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def start_sync(self) -> None:
        """Load active accounts and start watching each one.

        A store failure while loading accounts propagates to the caller.
        """
        if self._running:
            logger.info("sync_already_running")
            return

        # Accounts added while the load is in flight land in the cleared map
        self._accounts = {}
        accounts = await self._store.load_active_accounts()
        active = {a.id: a for a in accounts if a.is_active}
        skipped = len(accounts) - len(active)
        if skipped:
            logger.warning("inactive_accounts_skipped", count=skipped)
        self._accounts.update(active)

        self._queue = asyncio.Queue()
        self._running = True
        self._dispatcher = asyncio.create_task(self._dispatch(), name="sync-dispatcher")

        for account in list(self._accounts.values()):
            if account.is_active:
                await self._start_connection(account)

        self._timer = asyncio.create_task(self._periodic_sync(), name="sync-timer")
        logger.info("sync_started", accounts=len(self._accounts))

    async def stop_sync(self) -> None:
        """Stop every connection and the dispatcher; safe if never started."""
        if not self._running:
            return
        self._running = False

        if self._timer is not None:
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
            self._timer = None

        connections = list(self._connections.values())
        self._connections.clear()
        await asyncio.gather(*(conn.stop() for conn in connections))

        if self._dispatcher is not None:
            self._queue.put_nowait(_STOP)
            done, _ = await asyncio.wait(
                {self._dispatcher}, timeout=self._config.shutdown_grace_seconds
            )
            if not done:
                logger.warning("dispatcher_stop_timeout")
                self._dispatcher.cancel()
                await asyncio.gather(self._dispatcher, return_exceptions=True)
            self._dispatcher = None

        logger.info("sync_stopped", accounts=len(self._accounts))

    async def add_account(self, config: AccountConfig) -> int:
        """Persist a new account and start watching it if sync is running."""
        account_id = await self._store.insert_account(config)
        account = Account.model_validate({**config.model_dump(), "id": account_id})
        self._accounts[account_id] = account
        logger.info("account_added", account_id=account_id, name=account.name, active=account.is_active)

        if account.is_active and self._running:
            await self._start_connection(account)
        return account_id

    async def sync_all_accounts(self) -> None:
        """Fallback reconciliation pass over every active account."""
        for account_id, account in list(self._accounts.items()):
            if not account.is_active:
                continue
            try:
                await self.sync_account(account_id)
            except Exception:
                logger.exception("account_sync_failed", account_id=account_id)

    async def sync_account(self, account_id: int) -> None:
        if not self._config.fallback_resync:
            return
        connection = self._connections.get(account_id)
        if connection is None:
            logger.debug("account_sync_skipped", account_id=account_id)
            return
        connection.request_resync()

    def status(self) -> dict[int, ConnectionState]:
        """Snapshot of connection state per account."""
        return {
            account_id: (
                self._connections[account_id].state
                if account_id in self._connections
                else ConnectionState.DISCONNECTED
            )
            for account_id in self._accounts
        }

    def is_active(self, account_id: int) -> bool:
        account = self._accounts.get(account_id)
        return (
            account is not None
            and account.is_active
            and account_id in self._connections
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _start_connection(self, account: Account) -> None:
        if account.id in self._connections:
            return
        connection = self._connection_factory(
            account, self._config, self._fetcher, self._queue.put_nowait
        )
        self._connections[account.id] = connection
        await connection.start()
        logger.info("account_watch_started", account_id=account.id, folders=account.folders)

    async def _periodic_sync(self) -> None:
        interval = self._config.interval_minutes * 60
        while True:
            await asyncio.sleep(interval)
            logger.debug("fallback_sync_pass")
            await self.sync_all_accounts()

    async def _dispatch(self) -> None:
        logger.info("dispatcher_started")
        try:
            while self._running:
                event = await self._queue.get()
                if event is _STOP:
                    break
                if isinstance(event, MessagesFetched):
                    await self.on_messages_fetched(event)
                elif isinstance(event, StateChanged):
                    logger.info(
                        "connection_state_changed",
                        account_id=event.account_id,
                        state=event.state.value,
                    )
        finally:
            logger.info("dispatcher_stopped")

    async def on_messages_fetched(self, batch: MessagesFetched) -> None:
        """De-duplicate and forward a fetched batch in order."""
        for message in batch.messages:
            if not self._running:
                break
            try:
                if await self._store.message_exists(message.id):
                    logger.debug("duplicate_message_skipped", message_id=message.id)
                    continue
                result = await self._pipeline.process(message)
                if result.forwarded:
                    await self._publisher.publish(NewMessageEvent.from_message(result.message))
            except Exception:
                logger.exception(
                    "message_forward_failed",
                    account_id=batch.account_id,
                    message_id=message.id,
                )
