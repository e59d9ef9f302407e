"""Elasticsearch-backed full-text index for messages."""

from __future__ import annotations

from typing import Any

import structlog
from elasticsearch import AsyncElasticsearch, NotFoundError

from .config import ElasticsearchConfig
from .filters import build_message_search, total_pages
from .interfaces import SearchIndex, SearchPage
from .models import Message

logger = structlog.get_logger()

INDEX_SETTINGS: dict[str, Any] = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
    "analysis": {
        "analyzer": {
            "email_analyzer": {
                "type": "custom",
                "tokenizer": "standard",
                "filter": ["lowercase", "stop", "snowball"],
            }
        }
    },
}

INDEX_MAPPINGS: dict[str, Any] = {
    "properties": {
        "messageId": {"type": "keyword"},
        "accountId": {"type": "integer"},
        "accountName": {"type": "keyword"},
        "folder": {"type": "keyword"},
        "subject": {
            "type": "text",
            "analyzer": "email_analyzer",
            "fields": {"keyword": {"type": "keyword"}},
        },
        "fromEmail": {"type": "keyword"},
        "fromName": {"type": "text", "analyzer": "email_analyzer"},
        "toEmails": {"type": "keyword"},
        "ccEmails": {"type": "keyword"},
        "bccEmails": {"type": "keyword"},
        "date": {"type": "date"},
        "receivedDate": {"type": "date"},
        "size": {"type": "integer"},
        "flags": {"type": "keyword"},
        "bodyText": {"type": "text", "analyzer": "email_analyzer"},
        "bodyHtml": {"type": "text"},
        "attachments": {"type": "object"},
        "aiCategory": {"type": "keyword"},
        "aiConfidence": {"type": "float"},
        "isRead": {"type": "boolean"},
        "isImportant": {"type": "boolean"},
        "createdAt": {"type": "date"},
        "updatedAt": {"type": "date"},
    }
}


def to_document(message: Message) -> dict[str, Any]:
    """Render *message* as an index document."""
    return {
        "messageId": message.id,
        "accountId": message.account_id,
        "accountName": message.account_name,
        "folder": message.folder,
        "subject": message.subject,
        "fromEmail": message.from_email,
        "fromName": message.from_name,
        "toEmails": message.to_emails,
        "ccEmails": message.cc_emails,
        "bccEmails": message.bcc_emails,
        "date": message.date.isoformat(),
        "receivedDate": message.received_date.isoformat(),
        "size": message.size,
        "flags": message.flags,
        "bodyText": message.body_text,
        "bodyHtml": message.body_html,
        "attachments": [a.model_dump() for a in message.attachments],
        "aiCategory": message.ai_category.value if message.ai_category else None,
        "aiConfidence": message.ai_confidence,
        "isRead": message.is_read,
        "isImportant": message.is_important,
        "createdAt": message.created_at.isoformat(),
        "updatedAt": message.updated_at.isoformat(),
    }


class ElasticsearchIndex(SearchIndex):
    """Wraps the async Elasticsearch client.

    Created once at startup; :meth:`start` creates the index with the
    ``email_analyzer`` mapping when it does not exist yet.
    """

    def __init__(self, config: ElasticsearchConfig, client: AsyncElasticsearch | None = None) -> None:
        self._config = config
        self._client = client or AsyncElasticsearch(
            hosts=[config.url],
            request_timeout=config.request_timeout,
        )

    @property
    def client(self) -> AsyncElasticsearch:
        return self._client

    async def start(self) -> None:
        if not await self._client.ping():
            raise ConnectionError(f"Elasticsearch is not reachable at {self._config.url}")
        if not await self._client.indices.exists(index=self._config.index):
            await self._client.indices.create(
                index=self._config.index,
                settings=INDEX_SETTINGS,
                mappings=INDEX_MAPPINGS,
            )
            logger.info("search_index_created", index=self._config.index)

    async def close(self) -> None:
        await self._client.close()

    async def index_message(self, message: Message) -> None:
        await self._client.index(
            index=self._config.index,
            id=message.id,
            document=to_document(message),
        )

    async def delete_message(self, message_id: str) -> None:
        try:
            await self._client.delete(index=self._config.index, id=message_id)
        except NotFoundError:
            logger.debug("search_delete_missing", message_id=message_id)

    async def get_message(self, message_id: str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(index=self._config.index, id=message_id)
        except NotFoundError:
            return None
        return {"id": response["_id"], **response["_source"]}

    async def search(
        self,
        text: str | None,
        filters: list | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> SearchPage:
        body = build_message_search(text=text, filters=filters, page=page, limit=limit)
        response = await self._client.search(index=self._config.index, **body)

        hits = response["hits"]
        total = hits["total"]["value"] if isinstance(hits["total"], dict) else hits["total"]
        return SearchPage(
            items=[{"id": hit["_id"], **hit["_source"]} for hit in hits["hits"]],
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages(total, limit),
            highlights={hit["_id"]: hit["highlight"] for hit in hits["hits"] if "highlight" in hit},
        )

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as exc:
            logger.warning("search_index_ping_failed", error=str(exc))
            return False
