"""Data models shared across the sync core, the pipeline and the adapters."""

from __future__ import annotations

import math
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator


class ServiceStatus(str, Enum):
    """Runtime status of the service process."""

    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ConnectionState(str, Enum):
    """Lifecycle of a single mailbox connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    WATCHING = "watching"
    FETCHING = "fetching"
    RECONNECT_PENDING = "reconnect_pending"


class Category(str, Enum):
    """Labels the classifier may assign to a message."""

    INTERESTED = "Interested"
    MEETING_BOOKED = "Meeting Booked"
    NOT_INTERESTED = "Not Interested"
    SPAM = "Spam"
    OUT_OF_OFFICE = "Out of Office"


# ------------------------------------------------------------------
# Accounts
# ------------------------------------------------------------------


class AccountConfig(BaseModel):
    """Connection parameters for one mailbox account."""

    name: str = Field(min_length=1, description="Display name of the account")
    host: str = Field(min_length=1, description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    secure: bool = Field(default=True, description="Use an implicit TLS connection")
    username: str = Field(min_length=1, description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    folders: list[str] = Field(
        default_factory=lambda: ["INBOX"],
        min_length=1,
        description="Folders to watch; the first one receives IDLE notifications",
    )
    is_active: bool = Field(default=True, description="Whether the account should be synced")


class Account(AccountConfig):
    """An account persisted in the store."""

    id: int = Field(description="Store-assigned account identifier")


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------


class AttachmentMeta(BaseModel):
    """Metadata of one attachment; content is never kept."""

    filename: str = Field(default="unknown")
    content_type: str = Field(default="application/octet-stream")
    size: int = Field(default=0, description="Decoded payload size in bytes")
    content_id: str | None = Field(default=None)


def clamp_confidence(value: Any) -> float:
    """Clamp a model-reported confidence into [0, 1]; NaN and infinities are rejected."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError("confidence must be a finite number")
    return min(max(number, 0.0), 1.0)


class Classification(BaseModel):
    """Classifier output."""

    category: Category
    confidence: float
    reasoning: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return clamp_confidence(value)


DEFAULT_CLASSIFICATION = Classification(
    category=Category.NOT_INTERESTED,
    confidence=0.5,
    reasoning="Classification unavailable, defaulting to Not Interested",
)


# ------------------------------------------------------------------
# Assistant
# ------------------------------------------------------------------


class OriginalEmail(BaseModel):
    """The message a reply is being drafted for."""

    subject: str = ""
    body: str = ""
    from_email: str = ""


class ReplySuggestion(BaseModel):
    """Drafted reply plus the amount of context it was grounded on."""

    suggested_reply: str
    confidence: float
    reasoning: str = ""
    context_count: int = Field(default=0, description="Similar messages used as context")
    context_length: int = Field(default=0, description="Characters of context in the prompt")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return clamp_confidence(value)


FALLBACK_REPLY = ReplySuggestion(
    suggested_reply="Thank you for your email. I will get back to you soon.",
    confidence=0.3,
    reasoning="AI reply generation failed, using fallback response",
)


class KeyInformation(BaseModel):
    key_points: list[str] = Field(default_factory=list)
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    urgency: Literal["low", "medium", "high"] = "low"
    action_required: bool = False


DEFAULT_KEY_INFORMATION = KeyInformation(key_points=["Email received"])


class Message(BaseModel):
    """Canonical representation of a mailbox item."""

    id: str = Field(description="Message-ID header or deterministic fallback")
    account_id: int
    account_name: str
    folder: str
    uid: int = Field(description="IMAP UID within the folder")
    subject: str = ""
    from_email: str = ""
    from_name: str = ""
    to_emails: list[str] = Field(default_factory=list)
    cc_emails: list[str] = Field(default_factory=list)
    bcc_emails: list[str] = Field(default_factory=list)
    date: datetime
    received_date: datetime
    size: int = Field(default=0, description="Length of the plain-text body")
    flags: list[str] = Field(default_factory=list)
    body_text: str = ""
    body_html: str = ""
    attachments: list[AttachmentMeta] = Field(default_factory=list)
    ai_category: Category | None = None
    ai_confidence: float | None = None
    is_read: bool = False
    is_important: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def with_classification(self, classification: Classification) -> Message:
        """Return a copy labelled with *classification*."""
        return self.model_copy(
            update={
                "ai_category": classification.category,
                "ai_confidence": classification.confidence,
                "updated_at": datetime.now(UTC),
            }
        )


class NewMessageEvent(BaseModel):
    """Live-update payload emitted once per newly processed message."""

    id: str
    subject: str
    from_email: str
    from_name: str
    label: Category | None
    confidence: float | None
    date: datetime

    @classmethod
    def from_message(cls, message: Message) -> NewMessageEvent:
        return cls(
            id=message.id,
            subject=message.subject,
            from_email=message.from_email,
            from_name=message.from_name,
            label=message.ai_category,
            confidence=message.ai_confidence,
            date=message.date,
        )


# ------------------------------------------------------------------
# Health
# ------------------------------------------------------------------


class HealthStatus(BaseModel):
    """Response model for the /health endpoint."""

    service_name: str = Field(description="Name of the service")
    status: ServiceStatus = Field(description="Current service status")
    uptime_seconds: float = Field(description="Seconds since the service started")
    services: dict[str, bool] = Field(
        default_factory=dict,
        description="Reachability of each external collaborator",
    )
    accounts: dict[str, ConnectionState] = Field(
        default_factory=dict,
        description="Connection state per account id",
    )
