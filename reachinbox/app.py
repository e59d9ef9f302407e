"""FastAPI application: health, live updates, account admin, search and the reply assistant."""

from __future__ import annotations

import time
from dataclasses import asdict
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .filters import AccountFilter, CategoryFilter, DateRangeFilter, FolderFilter
from .models import (
    AccountConfig,
    Category,
    HealthStatus,
    KeyInformation,
    OriginalEmail,
    ReplySuggestion,
    ServiceStatus,
)
from .schemas import (
    KeyInformationRequest,
    ReplySuggestionRequest,
    SearchResponse,
    SemanticSearchRequest,
    SemanticSearchResponse,
)

if TYPE_CHECKING:
    from .service import ReachInboxService

logger = structlog.get_logger()


def create_app(service: ReachInboxService) -> FastAPI:
    """Build the FastAPI app bound to a running *service*.

    The *service* reference is used to read runtime status, check
    collaborators and reach the orchestrator, the live update hub, the
    search backends and the reply assistant.
    """
    app = FastAPI(title=f"{service.config.name} sync service", docs_url=None, redoc_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[service.config.frontend_url],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> JSONResponse:
        services = await service.check_services()
        status = HealthStatus(
            service_name=service.config.name,
            status=service.status,
            uptime_seconds=time.monotonic() - service.start_time,
            services=services,
            accounts={str(k): v for k, v in service.orchestrator.status().items()},
        )
        code = 200 if service.status in (ServiceStatus.RUNNING, ServiceStatus.STARTING) else 503
        return JSONResponse(content=status.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = service.status == ServiceStatus.RUNNING and service.orchestrator.running
        return JSONResponse(
            content={"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    @app.post("/api/accounts", status_code=201)
    async def add_account(config: AccountConfig) -> dict[str, int]:
        account_id = await service.orchestrator.add_account(config)
        return {"id": account_id}

    @app.get("/api/search", response_model=SearchResponse)
    async def search_messages(
        q: str | None = Query(default=None),
        account_id: int | None = Query(default=None),
        folder: str | None = Query(default=None),
        category: Category | None = Query(default=None),
        date_from: datetime | None = Query(default=None),
        date_to: datetime | None = Query(default=None),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
    ) -> dict[str, Any]:
        """Full-text search over indexed messages."""
        filters: list = []
        try:
            if account_id is not None:
                filters.append(AccountFilter(account_id=account_id))
            if folder is not None:
                filters.append(FolderFilter(folder=folder))
            if category is not None:
                filters.append(CategoryFilter(category=category))
            if date_from is not None or date_to is not None:
                filters.append(DateRangeFilter(start=date_from, end=date_to))
        except ValidationError as exc:
            detail = exc.errors(include_url=False, include_context=False, include_input=False)
            raise HTTPException(status_code=422, detail=detail) from exc

        result = await service.index.search(q, filters, page=page, limit=limit)
        return asdict(result)

    @app.post("/api/search/semantic", response_model=SemanticSearchResponse)
    async def semantic_search(request: SemanticSearchRequest) -> SemanticSearchResponse:
        matches = await service.semantic_store.search_similar(
            request.query, limit=request.limit, filters=request.filters
        )
        return SemanticSearchResponse(query=request.query, matches=matches)

    @app.get("/api/emails/{message_id:path}")
    async def get_email(message_id: str) -> dict[str, Any]:
        document = await service.index.get_message(message_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Message not found")
        return document

    @app.post("/api/ai/reply-suggestion", response_model=ReplySuggestion)
    async def reply_suggestion(request: ReplySuggestionRequest) -> ReplySuggestion:
        """Draft a reply grounded on similar Interested messages."""
        original = request.original_email
        if request.email_id is not None:
            document = await service.index.get_message(request.email_id)
            if document is None:
                raise HTTPException(status_code=404, detail="Message not found")
            original = OriginalEmail(
                subject=document.get("subject", ""),
                body=document.get("bodyText", ""),
                from_email=document.get("fromEmail", ""),
            )
        return await service.suggester.suggest_reply(
            original, product_info=request.product_info, agenda=request.agenda
        )

    @app.post("/api/ai/extract-info", response_model=KeyInformation)
    async def extract_info(request: KeyInformationRequest) -> KeyInformation:
        return await service.suggester.extract_key_information(request.subject, request.body)

    @app.websocket("/ws/updates")
    async def updates(websocket: WebSocket) -> None:
        await service.hub.connect(websocket)
        try:
            while True:
                # Clients only listen; incoming frames are ignored
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await service.hub.disconnect(websocket)

    return app
