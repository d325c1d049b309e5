"""Outbound SMS: sender interface + Twilio implementation."""

from __future__ import annotations

import logging
import re
from typing import Protocol

import httpx

from taxdesk.core.config import settings
from taxdesk.core.errors import TransportError, ValidationError
from taxdesk.services.http_service import request_with_retries

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
TWILIO_TIMEOUT_SECONDS = 15.0
TWILIO_MAX_ATTEMPTS = 2

_NON_DIGITS = re.compile(r"\D")


def format_phone_number(phone: str) -> str:
    """Normalize to E.164, assuming US for 10-digit numbers."""
    digits = _NON_DIGITS.sub("", phone)
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) > 10:
        return f"+{digits}"
    return phone


def is_valid_phone_number(phone: str | None) -> bool:
    if not phone:
        return False
    digits = _NON_DIGITS.sub("", phone)
    return 10 <= len(digits) <= 15


class SmsSender(Protocol):
    key: str

    async def send(self, to: str, body: str) -> str | None:
        """Send and return the provider message id. Raises TransportError."""


class TwilioSmsSender:
    key = "twilio"

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_PHONE_NUMBER
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, to: str, body: str) -> str | None:
        if not self.is_configured():
            raise TransportError("SMS service not configured")
        if not is_valid_phone_number(to):
            raise ValidationError("Invalid phone number format")

        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        data = {"To": format_phone_number(to), "From": self.from_number, "Body": body}

        try:
            async with httpx.AsyncClient(
                timeout=TWILIO_TIMEOUT_SECONDS,
                auth=(self.account_sid, self.auth_token),
                transport=self._transport,
            ) as client:

                async def request_fn() -> httpx.Response:
                    return await client.post(url, data=data)

                response = await request_with_retries(request_fn, max_attempts=TWILIO_MAX_ATTEMPTS)
        except httpx.RequestError as exc:
            logger.warning("Twilio connection error: %s", exc.__class__.__name__)
            raise TransportError("SMS provider unavailable") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.is_success:
            return payload.get("sid") if isinstance(payload, dict) else None

        detail = payload.get("message") if isinstance(payload, dict) else None
        logger.warning("Twilio API error: %s", response.status_code)
        raise TransportError(detail or "Failed to send SMS")


def get_sms_sender() -> SmsSender:
    """FastAPI dependency; tests override with a fake sender."""
    return TwilioSmsSender()
