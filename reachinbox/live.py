"""Live update hub broadcasting new-message events to WebSocket clients."""

from __future__ import annotations

import asyncio

import structlog
from fastapi import WebSocket

from .interfaces import UpdatePublisher
from .models import NewMessageEvent

logger = structlog.get_logger()


class LiveUpdateHub(UpdatePublisher):
    """Tracks connected dashboards and fans events out to them.

    A client whose send fails is dropped; the others still receive the
    event.
    """

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.info("live_client_connected", clients=len(self._clients))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)
        logger.info("live_client_disconnected", clients=len(self._clients))

    async def publish(self, event: NewMessageEvent) -> None:
        payload = {"type": "newEmail", "data": event.model_dump(mode="json")}
        async with self._lock:
            clients = list(self._clients)

        stale: list[WebSocket] = []
        for websocket in clients:
            try:
                await websocket.send_json(payload)
            except Exception as exc:
                logger.debug("live_send_failed", error=str(exc))
                stale.append(websocket)

        if stale:
            async with self._lock:
                self._clients.difference_update(stale)
        logger.debug("live_event_published", message_id=event.id, clients=len(clients) - len(stale))
