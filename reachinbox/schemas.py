"""Request/response schemas for the search and assistant endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from .filters import MessageFilter
from .models import OriginalEmail


class SearchResponse(BaseModel):
    items: list[dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int
    highlights: dict[str, dict[str, list[str]]] = Field(default_factory=dict)


class SemanticSearchRequest(BaseModel):
    """Body of POST /api/search/semantic."""

    query: str = Field(min_length=1)
    limit: int = Field(default=10, ge=1, le=100)
    filters: list[MessageFilter] = Field(default_factory=list)


class SemanticSearchResponse(BaseModel):
    query: str
    matches: list[dict[str, Any]]


class ReplySuggestionRequest(BaseModel):
    """Either a stored message id or the message itself, plus the pitch."""

    email_id: str | None = None
    original_email: OriginalEmail | None = None
    product_info: str = Field(min_length=1)
    agenda: str = Field(min_length=1)

    @model_validator(mode="after")
    def _needs_email(self) -> ReplySuggestionRequest:
        if self.email_id is None and self.original_email is None:
            raise ValueError("email_id or original_email is required")
        return self


class KeyInformationRequest(BaseModel):
    subject: str = ""
    body: str = ""

    @model_validator(mode="after")
    def _needs_content(self) -> KeyInformationRequest:
        if not self.subject.strip() and not self.body.strip():
            raise ValueError("subject or body is required")
        return self
