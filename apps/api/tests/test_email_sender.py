import json

import httpx
import pytest

from taxdesk.core.errors import TransportError
from taxdesk.services.email_sender import EmailMessage, ResendEmailSender, html_to_text

MESSAGE = EmailMessage(to="ann@example.com", subject="Documents needed", html="<p>Hi <b>Ann</b></p>")


def _resend(handler) -> ResendEmailSender:
    return ResendEmailSender(
        api_key="re_test",
        from_email="Harvey & Co <hello@example.com>",
        reply_to="",
        transport=httpx.MockTransport(handler),
    )


def test_html_to_text_strips_markup():
    assert html_to_text("<style>p{}</style><p>Fish &amp; <b>chips</b></p>") == "Fish & chips"


@pytest.mark.asyncio
async def test_resend_send_returns_message_id_and_sets_idempotency_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    message_id = await _resend(handler).send(MESSAGE, idempotency_key="drip/abc/stage-2")

    assert message_id == "email_123"
    assert seen["headers"]["Idempotency-Key"] == "drip/abc/stage-2"
    assert seen["headers"]["Authorization"] == "Bearer re_test"
    assert seen["payload"]["to"] == ["ann@example.com"]
    assert seen["payload"]["text"] == "Hi Ann"
    assert "reply_to" not in seen["payload"]


@pytest.mark.asyncio
async def test_resend_without_key_sends_no_idempotency_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        return httpx.Response(200, json={"id": "email_1"})

    await _resend(handler).send(MESSAGE)

    assert "Idempotency-Key" not in seen["headers"]


@pytest.mark.asyncio
async def test_resend_idempotency_conflict_counts_as_sent():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"id": "email_original"})

    assert await _resend(handler).send(MESSAGE, idempotency_key="k") == "email_original"


@pytest.mark.asyncio
async def test_resend_rejection_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "Invalid `to` field"})

    with pytest.raises(TransportError) as exc_info:
        await _resend(handler).send(MESSAGE)
    assert exc_info.value.message == "Resend API error: 422 (Invalid `to` field)"


@pytest.mark.asyncio
async def test_resend_connection_error_raises_transport_error(monkeypatch):
    from taxdesk.services import email_sender

    monkeypatch.setattr(email_sender, "RESEND_MAX_ATTEMPTS", 1)

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError):
        await _resend(handler).send(MESSAGE)


@pytest.mark.asyncio
async def test_resend_not_configured():
    with pytest.raises(TransportError) as exc_info:
        await ResendEmailSender(api_key="").send(MESSAGE)
    assert exc_info.value.message == "Email service not configured"
