"""ReachInbox mailbox sync service.

Public API re-exported here for convenience::

    from reachinbox import ReachInboxService, SyncOrchestrator, Message
"""

from .config import ReachInboxConfig, RetryConfig, SyncConfig
from .connection import MailboxConnection, MessagesFetched, StateChanged
from .fetcher import MessageFetcher
from .filters import (
    AccountFilter,
    CategoryFilter,
    DateRangeFilter,
    FolderFilter,
    MessageFilter,
    parse_filter,
)
from .interfaces import (
    Classifier,
    MessageStore,
    Notifier,
    SearchIndex,
    SemanticStore,
    UpdatePublisher,
)
from .logging import setup_logging
from .models import (
    Account,
    AccountConfig,
    AttachmentMeta,
    Category,
    Classification,
    ConnectionState,
    Message,
    NewMessageEvent,
    ServiceStatus,
)
from .orchestrator import SyncOrchestrator
from .pipeline import DownstreamPipeline, PipelineResult
from .retry import with_retry
from .service import ReachInboxService

__all__ = [
    "Account",
    "AccountConfig",
    "AccountFilter",
    "AttachmentMeta",
    "Category",
    "CategoryFilter",
    "Classification",
    "Classifier",
    "ConnectionState",
    "DateRangeFilter",
    "DownstreamPipeline",
    "FolderFilter",
    "MailboxConnection",
    "Message",
    "MessageFetcher",
    "MessageFilter",
    "MessageStore",
    "MessagesFetched",
    "NewMessageEvent",
    "Notifier",
    "PipelineResult",
    "ReachInboxConfig",
    "ReachInboxService",
    "RetryConfig",
    "SearchIndex",
    "SemanticStore",
    "ServiceStatus",
    "StateChanged",
    "SyncConfig",
    "SyncOrchestrator",
    "UpdatePublisher",
    "parse_filter",
    "setup_logging",
    "with_retry",
]
