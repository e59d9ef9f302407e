"""DownstreamPipeline: classify, persist, index, embed and notify."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from .interfaces import Classifier, MessageStore, Notifier, SearchIndex, SemanticStore
from .models import DEFAULT_CLASSIFICATION, Category, Message

logger = structlog.get_logger()

INTERESTED_EVENT = "email.interested"


@dataclass
class PipelineResult:
    """Outcome of one message; each flag records a step that succeeded."""

    message: Message
    classified: bool = False
    persisted: bool = False
    indexed: bool = False
    vectorized: bool = False
    notified: list[str] = field(default_factory=list)

    @property
    def forwarded(self) -> bool:
        return self.persisted


class DownstreamPipeline:
    """Runs one message through every downstream collaborator.

    Steps run in order and each one isolates its own failure, so a
    broken index or notifier never prevents persistence.  The message
    counts as forwarded once the store accepted it.
    """

    def __init__(
        self,
        store: MessageStore,
        classifier: Classifier,
        index: SearchIndex,
        semantic_store: SemanticStore,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._index = index
        self._semantic_store = semantic_store
        self._notifiers = notifiers or []

    async def process(self, message: Message) -> PipelineResult:
        log = logger.bind(message_id=message.id, account_id=message.account_id)

        try:
            classification = await self._classifier.classify(
                message.subject, message.body_text, message.from_email
            )
            classified = True
        except Exception as exc:
            log.warning("classification_failed", error=str(exc))
            classification = DEFAULT_CLASSIFICATION
            classified = False

        labelled = message.with_classification(classification)
        result = PipelineResult(message=labelled, classified=classified)

        try:
            await self._store.upsert_message(labelled)
            result.persisted = True
        except Exception:
            log.exception("message_persist_failed")

        try:
            await self._index.index_message(labelled)
            result.indexed = True
        except Exception as exc:
            log.warning("message_index_failed", error=str(exc))

        try:
            await self._semantic_store.store_message(labelled)
            result.vectorized = True
        except Exception as exc:
            log.warning("message_vector_store_failed", error=str(exc))

        if labelled.ai_category == Category.INTERESTED:
            for notifier in self._notifiers:
                name = type(notifier).__name__
                try:
                    if await notifier.notify(INTERESTED_EVENT, labelled):
                        result.notified.append(name)
                except Exception as exc:
                    log.warning("notification_failed", notifier=name, error=str(exc))

        log.info(
            "message_processed",
            category=labelled.ai_category.value if labelled.ai_category else None,
            confidence=labelled.ai_confidence,
            persisted=result.persisted,
            indexed=result.indexed,
            vectorized=result.vectorized,
            notified=result.notified,
        )
        return result
