"""Semantic message search using ChromaDB.

The Chroma client is synchronous, so every call runs through
``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import chromadb
import chromadb.config
import structlog

from .config import VectorStoreConfig
from .filters import build_where
from .interfaces import SemanticStore
from .models import Message

logger = structlog.get_logger()


def to_metadata(message: Message) -> dict[str, str | int | float | bool]:
    """Flat metadata for filtering; Chroma rejects ``None`` values."""
    meta: dict[str, str | int | float | bool] = {
        "account_id": message.account_id,
        "account_name": message.account_name,
        "folder": message.folder,
        "subject": message.subject,
        "from_email": message.from_email,
        "from_name": message.from_name,
        "date": message.date.timestamp(),
        "is_read": message.is_read,
    }
    if message.ai_category is not None:
        meta["ai_category"] = message.ai_category.value
    if message.ai_confidence is not None:
        meta["ai_confidence"] = message.ai_confidence
    return meta


class ChromaSemanticStore(SemanticStore):
    """ChromaDB-backed store of message content embeddings."""

    def __init__(self, config: VectorStoreConfig, client: Any | None = None) -> None:
        self._config = config
        self._client = client
        self._collection: Any | None = None

    def _make_client(self) -> Any:
        settings = chromadb.config.Settings(anonymized_telemetry=False)
        if self._config.host:
            return chromadb.HttpClient(
                host=self._config.host,
                port=self._config.port,
                settings=settings,
            )
        return chromadb.PersistentClient(path=self._config.persist_directory, settings=settings)

    def _start_sync(self) -> None:
        if self._client is None:
            self._client = self._make_client()
        self._collection = self._client.get_or_create_collection(
            name=self._config.collection,
            metadata={"description": "Email content embeddings"},
        )

    async def start(self) -> None:
        await asyncio.to_thread(self._start_sync)
        logger.info("semantic_store_started", collection=self._config.collection)

    def _require(self) -> Any:
        if self._collection is None:
            raise RuntimeError("Semantic store is not started")
        return self._collection

    async def store_message(self, message: Message) -> None:
        collection = self._require()
        await asyncio.to_thread(
            collection.upsert,
            ids=[message.id],
            documents=[f"{message.subject}\n\n{message.body_text}"],
            metadatas=[to_metadata(message)],
        )

    async def delete_message(self, message_id: str) -> None:
        collection = self._require()
        await asyncio.to_thread(collection.delete, ids=[message_id])

    async def search_similar(
        self,
        query: str,
        limit: int = 5,
        filters: list | None = None,
    ) -> list[dict[str, Any]]:
        collection = self._require()
        kwargs: dict[str, Any] = {"query_texts": [query], "n_results": limit}
        where = build_where(filters)
        if where is not None:
            kwargs["where"] = where
        results = await asyncio.to_thread(collection.query, **kwargs)

        matches: list[dict[str, Any]] = []
        if results["ids"] and results["ids"][0]:
            distances = results.get("distances") or [[]]
            metadatas = results.get("metadatas") or [[]]
            documents = results.get("documents") or [[]]
            for i, message_id in enumerate(results["ids"][0]):
                distance = distances[0][i] if i < len(distances[0]) else None
                matches.append(
                    {
                        "id": message_id,
                        "score": 1 - distance if distance is not None else None,
                        "metadata": metadatas[0][i] if i < len(metadatas[0]) else {},
                        "document": documents[0][i] if i < len(documents[0]) else None,
                    }
                )
        return matches

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await asyncio.to_thread(self._client.heartbeat)
            return True
        except Exception as exc:
            logger.warning("semantic_store_ping_failed", error=str(exc))
            return False

    async def close(self) -> None:
        """Drop the collection handle and release the client's shared system."""
        client, self._client = self._client, None
        self._collection = None
        if client is not None:
            await asyncio.to_thread(client.clear_system_cache)
        logger.info("semantic_store_closed")
