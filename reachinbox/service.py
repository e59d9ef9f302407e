"""ReachInboxService: wires collaborators and runs until shutdown."""

from __future__ import annotations

import asyncio
import signal
import time

import structlog
import uvicorn

from .app import create_app
from .assistant import ReplySuggester
from .classifier import LLMClassifier
from .config import ReachInboxConfig
from .live import LiveUpdateHub
from .llm import LLMProvider
from .models import ServiceStatus
from .notifiers import SlackNotifier, WebhookNotifier
from .orchestrator import SyncOrchestrator
from .pipeline import DownstreamPipeline
from .search_index import ElasticsearchIndex
from .semantic_store import ChromaSemanticStore
from .store import SqlMessageStore

logger = structlog.get_logger()


class ReachInboxService:
    """Owns every collaborator and the HTTP server.

    ``run()`` starts the store, the search index and the semantic store
    (any failure there is fatal), starts syncing, then serves the API
    until SIGTERM / SIGINT.  Call ``asyncio.run(service.run())``.
    """

    def __init__(
        self,
        config: ReachInboxConfig,
        *,
        store: SqlMessageStore | None = None,
        index: ElasticsearchIndex | None = None,
        semantic_store: ChromaSemanticStore | None = None,
        classifier: LLMClassifier | None = None,
    ) -> None:
        self.config = config
        self.status: ServiceStatus = ServiceStatus.STARTING
        self.start_time: float = time.monotonic()

        self.store = store or SqlMessageStore(config.database)
        self.index = index or ElasticsearchIndex(config.elasticsearch)
        self.semantic_store = semantic_store or ChromaSemanticStore(config.vector_store)
        self.llm = LLMProvider(config.ai)
        self.classifier = classifier or LLMClassifier(config.ai, provider=self.llm)
        self.suggester = ReplySuggester(config.ai, self.semantic_store, provider=self.llm)
        self.slack = SlackNotifier(config.slack, config.retry, frontend_url=config.frontend_url)
        self.webhook = WebhookNotifier(config.webhook, config.retry)
        self.hub = LiveUpdateHub()

        self.pipeline = DownstreamPipeline(
            self.store,
            self.classifier,
            self.index,
            self.semantic_store,
            notifiers=[self.slack, self.webhook],
        )
        self.orchestrator = SyncOrchestrator(config.sync, self.store, self.pipeline, self.hub)
        self._shutdown_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def check_services(self) -> dict[str, bool]:
        database, elasticsearch, vector_db = await asyncio.gather(
            self.store.ping(),
            self.index.ping(),
            self.semantic_store.ping(),
        )
        services = {
            "database": database,
            "elasticsearch": elasticsearch,
            "vectorDB": vector_db,
        }
        if self.status == ServiceStatus.RUNNING and not all(services.values()):
            self.status = ServiceStatus.DEGRADED
        elif self.status == ServiceStatus.DEGRADED and all(services.values()):
            self.status = ServiceStatus.RUNNING
        return services

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def _handle(sig: signal.Signals) -> None:
            logger.info("shutdown_signal_received", signal=sig.name)
            self._shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _handle, sig)

    async def start(self) -> None:
        """Initialise collaborators and start syncing; failures propagate."""
        await self.store.start()
        await self.index.start()
        await self.semantic_store.start()
        await self.slack.start()
        await self.webhook.start()
        await self.orchestrator.start_sync()
        self.status = ServiceStatus.RUNNING
        logger.info("service_started", service=self.config.name)

    async def stop(self) -> None:
        self.status = ServiceStatus.STOPPING
        await self.orchestrator.stop_sync()
        await self.webhook.stop()
        await self.slack.stop()
        await self.index.close()
        await self.semantic_store.close()
        await self.store.close()
        await self.llm.close()
        self.status = ServiceStatus.STOPPED
        logger.info("service_stopped", service=self.config.name)

    async def _run_server(self) -> None:
        """Serve the API and shut it down when the shutdown event fires."""
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(self),
                host=self.config.host,
                port=self.config.port,
                log_level="warning",
            )
        )
        serve_task = asyncio.create_task(server.serve())
        await self._shutdown_event.wait()
        server.should_exit = True
        await serve_task

    async def run(self) -> None:
        self._install_signal_handlers()
        self.start_time = time.monotonic()
        logger.info("service_starting", service=self.config.name)

        try:
            await self.start()
        except Exception:
            logger.exception("service_start_failed", service=self.config.name)
            await self.stop()
            raise

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_server())
        except* Exception:
            logger.exception("service_task_group_error", service=self.config.name)
        finally:
            await self.stop()
