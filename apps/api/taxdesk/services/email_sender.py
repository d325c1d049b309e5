"""Outbound email: sender interface + Resend implementation."""

from __future__ import annotations

import html as html_module
import logging
import re
from dataclasses import dataclass
from typing import Protocol

import httpx

from taxdesk.core.config import settings
from taxdesk.core.errors import TransportError
from taxdesk.services.http_service import DEFAULT_RETRY_STATUSES, request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RESEND_TIMEOUT_SECONDS = 20.0


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str | None = None


class EmailSender(Protocol):
    key: str

    async def send(self, message: EmailMessage, *, idempotency_key: str | None = None) -> str | None:
        """Send the message and return the provider message id.

        Raises TransportError when the provider rejects or cannot be reached.
        """


def html_to_text(content: str) -> str:
    """Plain-text alternative for deliverability; not a full HTML renderer."""
    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", content, flags=re.DOTALL | re.I)
    text = re.sub(r"<[^>]+>", " ", text)
    text = re.sub(r"\s+", " ", text).strip()
    return html_module.unescape(text)


class ResendEmailSender:
    """Sends through the Resend HTTP API with retries and idempotency keys."""

    key = "resend"

    def __init__(
        self,
        api_key: str | None = None,
        from_email: str | None = None,
        reply_to: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.from_email = from_email or settings.EMAIL_FROM
        self.reply_to = reply_to if reply_to is not None else settings.EMAIL_REPLY_TO
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _payload(self, message: EmailMessage) -> dict[str, object]:
        payload: dict[str, object] = {
            "from": self.from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        text = message.text or html_to_text(message.html)
        if text:
            payload["text"] = text
        if self.reply_to:
            payload["reply_to"] = self.reply_to
        return payload

    async def send(self, message: EmailMessage, *, idempotency_key: str | None = None) -> str | None:
        if not self.is_configured():
            raise TransportError("Email service not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        payload = self._payload(message)

        try:
            async with httpx.AsyncClient(
                timeout=RESEND_TIMEOUT_SECONDS, transport=self._transport
            ) as client:

                async def request_fn() -> httpx.Response:
                    return await client.post(RESEND_SEND_URL, headers=headers, json=payload)

                response = await request_with_retries(
                    request_fn,
                    max_attempts=RESEND_MAX_ATTEMPTS,
                    base_delay=RESEND_RETRY_BASE_DELAY,
                    max_delay=RESEND_RETRY_MAX_DELAY,
                    retry_statuses=DEFAULT_RETRY_STATUSES,
                )
        except httpx.TimeoutException as exc:
            logger.warning("Resend timeout")
            raise TransportError("Email provider timeout") from exc
        except httpx.RequestError as exc:
            logger.warning("Resend connection error: %s", exc.__class__.__name__)
            raise TransportError(f"Email provider connection error: {exc.__class__.__name__}") from exc

        if 200 <= response.status_code < 300:
            message_id = _json_field(response, "id")
            logger.info("Email sent, message_id=%s", message_id)
            return message_id

        # Idempotency conflict: this key was already accepted
        if response.status_code == 409:
            logger.info("Email already sent for idempotency key")
            return _json_field(response, "id")

        detail = _json_field(response, "message") or _json_field(response, "error")
        error_msg = f"Resend API error: {response.status_code}"
        if detail:
            error_msg = f"{error_msg} ({detail})"
        logger.warning("%s", error_msg)
        raise TransportError(error_msg)


def _json_field(response: httpx.Response, field: str) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        value = data.get(field)
        if isinstance(value, str) and value:
            return value
    return None


def get_email_sender() -> EmailSender:
    """FastAPI dependency; tests override with a fake sender."""
    return ResendEmailSender()
