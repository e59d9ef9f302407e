"""Message filters and the search query builders that consume them.

A filter is one of four tagged variants discriminated by ``kind``.  The
same filter list drives both the Elasticsearch query and the Chroma
``where`` clause.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from .models import Category


class AccountFilter(BaseModel):
    kind: Literal["account"] = "account"
    account_id: int

    def to_es(self) -> dict:
        return {"term": {"accountId": self.account_id}}

    def to_where(self) -> dict:
        return {"account_id": self.account_id}


class FolderFilter(BaseModel):
    kind: Literal["folder"] = "folder"
    folder: str

    @field_validator("folder")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("folder must not be empty")
        return value

    def to_es(self) -> dict:
        return {"term": {"folder": self.folder}}

    def to_where(self) -> dict:
        return {"folder": self.folder}


class CategoryFilter(BaseModel):
    kind: Literal["category"] = "category"
    category: Category

    def to_es(self) -> dict:
        return {"term": {"aiCategory": self.category.value}}

    def to_where(self) -> dict:
        return {"ai_category": self.category.value}


class DateRangeFilter(BaseModel):
    """Inclusive date range; at least one bound is required."""

    kind: Literal["date_range"] = "date_range"
    start: datetime | None = None
    end: datetime | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> DateRangeFilter:
        if self.start is None and self.end is None:
            raise ValueError("date range needs a start or an end")
        if self.start and self.end and self.start > self.end:
            raise ValueError("date range start must not be after end")
        return self

    def to_es(self) -> dict:
        range_q: dict = {}
        if self.start:
            range_q["gte"] = self.start.isoformat()
        if self.end:
            range_q["lte"] = self.end.isoformat()
        return {"range": {"date": range_q}}

    def to_where(self) -> dict:
        # Chroma metadata stores the date as epoch seconds
        clauses: list[dict] = []
        if self.start:
            clauses.append({"date": {"$gte": self.start.timestamp()}})
        if self.end:
            clauses.append({"date": {"$lte": self.end.timestamp()}})
        return clauses[0] if len(clauses) == 1 else {"$and": clauses}


MessageFilter = Annotated[
    Union[AccountFilter, FolderFilter, CategoryFilter, DateRangeFilter],
    Field(discriminator="kind"),
]

_filter_adapter: TypeAdapter[Any] = TypeAdapter(MessageFilter)


def parse_filter(data: dict) -> AccountFilter | FolderFilter | CategoryFilter | DateRangeFilter:
    """Validate a raw dict into the matching filter variant."""
    return _filter_adapter.validate_python(data)


# ------------------------------------------------------------------
# Query builders
# ------------------------------------------------------------------


def build_message_search(
    *,
    text: str | None = None,
    filters: list | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Build an ES query for the messages index.

    Returns a dict ready to unpack into ``AsyncElasticsearch.search()``.
    """
    if page < 1:
        raise ValueError("page must be >= 1")
    if limit < 1:
        raise ValueError("limit must be >= 1")

    must: list[dict] = []
    if text:
        must.append({
            "multi_match": {
                "query": text,
                "fields": ["subject^2", "bodyText", "fromName", "fromEmail"],
                "type": "best_fields",
                "fuzziness": "AUTO",
            }
        })

    return {
        "query": {
            "bool": {
                "must": must or [{"match_all": {}}],
                "filter": [f.to_es() for f in filters or []],
            }
        },
        "highlight": {
            "fields": {
                "subject": {},
                "bodyText": {"fragment_size": 150, "number_of_fragments": 3},
            }
        },
        "sort": [{"date": {"order": "desc"}}],
        "from": (page - 1) * limit,
        "size": limit,
    }


def build_where(filters: list | None) -> dict | None:
    """Combine filters into a Chroma ``where`` clause, or ``None`` if empty."""
    clauses = [f.to_where() for f in filters or []]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
