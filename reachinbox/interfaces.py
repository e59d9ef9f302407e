"""Abstract collaborators the sync core and the pipeline depend on.

Concrete adapters live in :mod:`reachinbox.store`,
:mod:`reachinbox.search_index`, :mod:`reachinbox.semantic_store`,
:mod:`reachinbox.classifier`, :mod:`reachinbox.notifiers` and
:mod:`reachinbox.live`.  Components receive them at construction, so
tests substitute in-memory fakes.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any

from .models import Account, AccountConfig, Classification, Message, NewMessageEvent


@dataclass
class SearchPage:
    """One page of search results."""

    items: list[dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int
    highlights: dict[str, dict[str, list[str]]] = field(default_factory=dict)


class MessageStore(abc.ABC):
    """Durable store for accounts and messages."""

    @abc.abstractmethod
    async def load_active_accounts(self) -> list[Account]: ...

    @abc.abstractmethod
    async def insert_account(self, config: AccountConfig) -> int:
        """Persist *config* and return the new account id."""

    @abc.abstractmethod
    async def upsert_message(self, message: Message) -> None:
        """Insert *message*, or update its labels if the id already exists."""

    @abc.abstractmethod
    async def message_exists(self, message_id: str) -> bool: ...

    @abc.abstractmethod
    async def ping(self) -> bool: ...


class Classifier(abc.ABC):
    """Assigns a category to a message."""

    @abc.abstractmethod
    async def classify(self, subject: str, body: str, from_address: str) -> Classification:
        """Return a classification; never raises.

        Implementations fall back to the default label on any provider
        failure or timeout.
        """


class SearchIndex(abc.ABC):
    """Full-text search index."""

    @abc.abstractmethod
    async def index_message(self, message: Message) -> None: ...

    @abc.abstractmethod
    async def delete_message(self, message_id: str) -> None: ...

    @abc.abstractmethod
    async def get_message(self, message_id: str) -> dict[str, Any] | None: ...

    @abc.abstractmethod
    async def search(
        self,
        text: str | None,
        filters: list | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> SearchPage: ...

    @abc.abstractmethod
    async def ping(self) -> bool: ...


class SemanticStore(abc.ABC):
    """Vector store used for similarity search over message content."""

    @abc.abstractmethod
    async def store_message(self, message: Message) -> None: ...

    @abc.abstractmethod
    async def delete_message(self, message_id: str) -> None: ...

    @abc.abstractmethod
    async def search_similar(
        self,
        query: str,
        limit: int = 5,
        filters: list | None = None,
    ) -> list[dict[str, Any]]: ...

    @abc.abstractmethod
    async def ping(self) -> bool: ...


class Notifier(abc.ABC):
    """Outbound notification sink."""

    @abc.abstractmethod
    async def notify(self, event_type: str, message: Message) -> bool:
        """Deliver a notification; return whether it was sent."""


class UpdatePublisher(abc.ABC):
    """Live update channel for connected dashboards."""

    @abc.abstractmethod
    async def publish(self, event: NewMessageEvent) -> None: ...
