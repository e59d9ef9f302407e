"""Service configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
Each concern gets its own settings class and env-var prefix; the root
:class:`ReachInboxConfig` nests them.
"""

from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class SyncConfig(BaseSettings):
    """Mailbox synchronization settings shared by every account."""

    model_config = {"env_prefix": "SYNC_"}

    interval_minutes: float = Field(
        default=5.0,
        description="Minutes between fallback reconciliation passes",
    )
    fallback_resync: bool = Field(
        default=True,
        description="Ask every connection for an UNSEEN re-check on each fallback pass",
    )
    reconnect_delay_seconds: float = Field(
        default=30.0,
        description="Fixed delay before reconnecting a failed mailbox connection",
    )
    lookback_days: int = Field(
        default=30,
        description="Days of history searched once when a connection starts",
    )
    max_batch_size: int = Field(
        default=50,
        ge=1,
        description="Most recent UIDs fetched per burst",
    )
    connect_timeout_seconds: float = Field(
        default=60.0,
        description="Socket connect timeout for IMAP connections",
    )
    auth_timeout_seconds: float = Field(
        default=30.0,
        description="Socket read timeout for login and regular IMAP commands",
    )
    idle_timeout_seconds: float = Field(
        default=300.0,
        description="Length of one IDLE cycle before a keep-alive NOOP is sent",
    )
    idle_check_seconds: float = Field(
        default=10.0,
        description="Granularity of IDLE polling; bounds stop/resync latency",
    )
    ssl_verify: bool = Field(
        default=True,
        description="Verify IMAP server TLS certificates",
    )
    shutdown_grace_seconds: float = Field(
        default=30.0,
        description="Time allowed for the in-flight message to finish on stop",
    )


class DatabaseConfig(BaseSettings):
    """Postgres settings for accounts and messages."""

    model_config = {"env_prefix": "DATABASE_"}

    url: str = Field(
        default="postgresql+asyncpg://localhost:5432/reachinbox",
        description="Async SQLAlchemy database URL",
    )
    pool_size: int = Field(default=5, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Connections allowed above pool_size")


class ElasticsearchConfig(BaseSettings):
    """Elasticsearch search index settings."""

    model_config = {"env_prefix": "ELASTICSEARCH_"}

    url: str = Field(default="http://localhost:9200", description="Elasticsearch base URL")
    index: str = Field(default="emails", description="Index holding message documents")
    request_timeout: float = Field(default=30.0, description="Request timeout in seconds")


class VectorStoreConfig(BaseSettings):
    """ChromaDB semantic store settings.

    When ``host`` is set an HTTP client is used; otherwise an embedded
    persistent client writes to ``persist_directory``.
    """

    model_config = {"env_prefix": "CHROMA_"}

    host: str | None = Field(default=None, description="Chroma server host")
    port: int = Field(default=8000, description="Chroma server port")
    persist_directory: str = Field(
        default="./chroma_db",
        description="Directory for the embedded persistent client",
    )
    collection: str = Field(
        default="reachinbox_emails",
        description="Collection holding message documents",
    )


class AIConfig(BaseSettings):
    """LLM classification and assistant settings."""

    model_config = {"env_prefix": "AI_"}

    provider: str = Field(default="openai", description="Preferred provider: openai or anthropic")
    openai_api_key: SecretStr | None = Field(default=None, description="OpenAI API key")
    anthropic_api_key: SecretStr | None = Field(default=None, description="Anthropic API key")
    openai_model: str = Field(default="gpt-4", description="OpenAI chat model")
    anthropic_model: str = Field(
        default="claude-3-sonnet-20240229",
        description="Anthropic messages model",
    )
    temperature: float = Field(default=0.3, description="Sampling temperature")
    max_tokens: int = Field(default=500, description="Completion token limit")
    timeout_seconds: float = Field(
        default=30.0,
        description="Classification deadline; slower calls fall back to the default label",
    )
    body_chars: int = Field(
        default=1000,
        description="Characters of the body included in the classification prompt",
    )
    reply_temperature: float = Field(default=0.7, description="Sampling temperature for reply suggestions")
    reply_max_tokens: int = Field(default=800, description="Completion token limit for reply suggestions")
    reply_context_limit: int = Field(
        default=5,
        description="Similar Interested messages retrieved as reply context",
    )
    extract_max_tokens: int = Field(default=400, description="Completion token limit for key-information extraction")
    extract_body_chars: int = Field(
        default=1500,
        description="Characters of the body included in the extraction prompt",
    )


class SlackConfig(BaseSettings):
    """Slack incoming-webhook notification settings."""

    model_config = {"env_prefix": "SLACK_"}

    webhook_url: SecretStr | None = Field(default=None, description="Incoming webhook URL")
    channel: str = Field(default="#email-notifications", description="Target channel")
    username: str = Field(default="ReachInbox Bot", description="Bot display name")
    timeout_seconds: float = Field(default=10.0, description="HTTP request timeout")


class WebhookConfig(BaseSettings):
    """Generic outbound webhook settings."""

    model_config = {"env_prefix": "WEBHOOK_"}

    url: str | None = Field(default=None, description="Webhook endpoint; empty disables it")
    timeout_seconds: float = Field(default=10.0, description="HTTP request timeout")
    source: str = Field(default="reachinbox", description="Source name sent in payload metadata")
    version: str = Field(default="1.0.0", description="Version sent in payload metadata")


class RetryConfig(BaseSettings):
    """Retry / backoff settings driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, description="Maximum delivery attempts per notification")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=10.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class ReachInboxConfig(BaseSettings):
    """Root configuration for the service.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "REACHINBOX_"}

    name: str = Field(default="reachinbox", description="Service name used in logs and health")
    host: str = Field(default="0.0.0.0", description="HTTP bind address")
    port: int = Field(default=3000, description="HTTP bind port")
    frontend_url: str = Field(
        default="http://localhost:3001",
        description="Dashboard URL used for links and CORS",
    )
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(
        default=True,
        description="Use JSON log output (True for prod, False for dev)",
    )

    sync: SyncConfig = Field(default_factory=SyncConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    elasticsearch: ElasticsearchConfig = Field(default_factory=ElasticsearchConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
