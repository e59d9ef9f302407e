"""Outbound notification sinks: Slack incoming webhook and a generic webhook."""

from __future__ import annotations

import abc
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from .config import RetryConfig, SlackConfig, WebhookConfig
from .interfaces import Notifier
from .models import Message
from .retry import with_retry

logger = structlog.get_logger()

SLACK_PREVIEW_CHARS = 200


class _HttpNotifier(Notifier):
    """Shared httpx client lifecycle and retrying POST."""

    def __init__(self, retry_config: RetryConfig, timeout_seconds: float) -> None:
        self._retry_config = retry_config
        self._timeout = timeout_seconds
        self._client: httpx.AsyncClient | None = None

    @property
    @abc.abstractmethod
    def enabled(self) -> bool: ...

    async def start(self) -> None:
        if not self.enabled:
            logger.info("notifier_disabled", notifier=type(self).__name__)
            return
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str] | None = None) -> None:
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} is not started")
        client = self._client

        @with_retry(self._retry_config)
        async def _send() -> None:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()

        await _send()


class SlackNotifier(_HttpNotifier):
    """Posts a message summary to a Slack incoming webhook."""

    def __init__(self, config: SlackConfig, retry_config: RetryConfig, *, frontend_url: str = "") -> None:
        super().__init__(retry_config, config.timeout_seconds)
        self._config = config
        self._frontend_url = frontend_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return self._config.webhook_url is not None

    def build_payload(self, message: Message) -> dict[str, Any]:
        preview = message.body_text[:SLACK_PREVIEW_CHARS]
        if len(message.body_text) > SLACK_PREVIEW_CHARS:
            preview += "..."
        confidence = message.ai_confidence if message.ai_confidence is not None else 0.0
        return {
            "channel": self._config.channel,
            "username": self._config.username,
            "icon_emoji": ":email:",
            "attachments": [
                {
                    "color": "good",
                    "title": "New Interested Email",
                    "title_link": f"{self._frontend_url}/emails/{message.id}",
                    "fields": [
                        {"title": "From", "value": f"{message.from_name} <{message.from_email}>", "short": True},
                        {"title": "Subject", "value": message.subject or "No Subject", "short": True},
                        {"title": "Account", "value": message.account_name, "short": True},
                        {"title": "Folder", "value": message.folder, "short": True},
                        {"title": "AI Confidence", "value": f"{confidence * 100:.1f}%", "short": True},
                        {"title": "Date", "value": message.date.isoformat(), "short": True},
                    ],
                    "text": preview,
                    "footer": "ReachInbox",
                    "ts": int(message.date.timestamp()),
                }
            ],
        }

    async def notify(self, event_type: str, message: Message) -> bool:
        if not self.enabled:
            logger.warning("slack_webhook_not_configured")
            return False
        assert self._config.webhook_url is not None
        try:
            await self._post(self._config.webhook_url.get_secret_value(), self.build_payload(message))
        except Exception as exc:
            logger.error("slack_notification_failed", message_id=message.id, error=str(exc))
            return False
        logger.info("slack_notification_sent", message_id=message.id, event_type=event_type)
        return True


class WebhookNotifier(_HttpNotifier):
    """POSTs ``{event, timestamp, data}`` JSON to a configured endpoint."""

    def __init__(self, config: WebhookConfig, retry_config: RetryConfig) -> None:
        super().__init__(retry_config, config.timeout_seconds)
        self._config = config

    @property
    def enabled(self) -> bool:
        return bool(self._config.url)

    def build_payload(self, event_type: str, message: Message) -> dict[str, Any]:
        return {
            "event": event_type,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": {
                "email": message.model_dump(mode="json"),
                "metadata": {
                    "source": self._config.source,
                    "version": self._config.version,
                },
            },
        }

    async def notify(self, event_type: str, message: Message) -> bool:
        if not self.enabled:
            logger.warning("webhook_url_not_configured")
            return False
        assert self._config.url is not None
        headers = {
            "User-Agent": f"ReachInbox/{self._config.version}",
            "X-Event-Type": event_type,
        }
        try:
            await self._post(self._config.url, self.build_payload(event_type, message), headers)
        except Exception as exc:
            logger.error("webhook_notification_failed", message_id=message.id, event_type=event_type, error=str(exc))
            return False
        logger.info("webhook_notification_sent", message_id=message.id, event_type=event_type)
        return True
