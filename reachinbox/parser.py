"""MIME parser: walks the whole message to extract bodies, addresses
and attachment metadata.
"""

from __future__ import annotations

import email
import email.policy
import email.utils
from dataclasses import dataclass, field
from datetime import UTC, datetime

from bs4 import BeautifulSoup

from .models import AttachmentMeta

# Elements rendered on a line of their own
_BLOCK_TAGS = ["p", "div", "tr", "li", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "table"]


@dataclass
class ParsedEmail:
    """Structured representation of a fully parsed email."""

    message_id: str
    subject: str
    from_name: str
    from_address: str
    to_addresses: list[str]
    cc_addresses: list[str]
    bcc_addresses: list[str]
    date: datetime | None
    body_text: str
    body_html: str
    attachments: list[AttachmentMeta] = field(default_factory=list)


class MimeParser:
    """Stateless parser: raw RFC 822 bytes -> ParsedEmail."""

    def parse(self, raw_bytes: bytes) -> ParsedEmail:
        msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)

        body_text, body_html = self._extract_bodies(msg)
        if not body_text and body_html:
            body_text = html_to_text(body_html)
        from_name, from_address = self._parse_sender(msg.get("From"))

        return ParsedEmail(
            message_id=str(msg.get("Message-ID", "")).strip(),
            subject=str(msg.get("Subject", "")),
            from_name=from_name,
            from_address=from_address,
            to_addresses=self._parse_address_list(msg.get("To")),
            cc_addresses=self._parse_address_list(msg.get("Cc")),
            bcc_addresses=self._parse_address_list(msg.get("Bcc")),
            date=self._parse_date(msg.get("Date")),
            body_text=body_text or "",
            body_html=body_html or "",
            attachments=self._extract_attachments(msg),
        )

    def _extract_bodies(self, msg: email.message.Message) -> tuple[str | None, str | None]:
        """Walk MIME parts and return (plain_text, html_text)."""
        body_text: str | None = None
        body_html: str | None = None

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            if part.get_content_disposition() == "attachment":
                continue

            content_type = part.get_content_type()
            if content_type not in ("text/plain", "text/html"):
                continue
            payload = part.get_content()
            if not isinstance(payload, str):
                continue
            if content_type == "text/plain" and body_text is None:
                body_text = payload
            elif content_type == "text/html" and body_html is None:
                body_html = payload

        return body_text, body_html

    def _extract_attachments(self, msg: email.message.Message) -> list[AttachmentMeta]:
        """Collect metadata for attachment parts; payloads are discarded."""
        attachments: list[AttachmentMeta] = []

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            filename = part.get_filename()
            if part.get_content_disposition() != "attachment" and not filename:
                continue

            payload = part.get_payload(decode=True) or b""
            content_id = part.get("Content-ID")
            attachments.append(
                AttachmentMeta(
                    filename=filename or "unknown",
                    content_type=part.get_content_type(),
                    size=len(payload),
                    content_id=str(content_id).strip("<> ") if content_id else None,
                )
            )

        return attachments

    @staticmethod
    def _parse_sender(header_value: str | None) -> tuple[str, str]:
        if not header_value:
            return "", ""
        name, address = email.utils.parseaddr(str(header_value))
        return name, address

    @staticmethod
    def _parse_address_list(header_value: str | None) -> list[str]:
        if not header_value:
            return []
        return [addr for _, addr in email.utils.getaddresses([str(header_value)]) if addr]

    @staticmethod
    def _parse_date(header_value: str | None) -> datetime | None:
        if not header_value:
            return None
        try:
            parsed = email.utils.parsedate_to_datetime(str(header_value))
        except (TypeError, ValueError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed


def html_to_text(markup: str) -> str:
    """Plain-text rendering of an HTML body, one line per block element."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.append("\n")
    lines = (line.strip() for line in soup.get_text().splitlines())
    return "\n".join(line for line in lines if line)
