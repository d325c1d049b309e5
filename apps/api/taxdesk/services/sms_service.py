"""Templated or free-form SMS to a client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from taxdesk.core.context import RequestContext
from taxdesk.core.errors import NotFoundError, ValidationError
from taxdesk.core.structured_logging import build_log_context
from taxdesk.db.models import Client
from taxdesk.schemas.activity import SmsSentActivity
from taxdesk.services import activity_service
from taxdesk.services.sms_sender import SmsSender, is_valid_phone_number
from taxdesk.services.sms_templates import CUSTOM_TEMPLATE_ID, fill_template, get_template

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 1600


@dataclass(frozen=True)
class SentSms:
    message_id: str | None
    body: str


def render_sms(
    client: Client,
    template_id: str,
    custom_message: str | None = None,
    values: dict[str, str] | None = None,
) -> str:
    if template_id == CUSTOM_TEMPLATE_ID:
        template_text = (custom_message or "").strip()
        if not template_text:
            raise ValidationError("Message is required")
    else:
        template = get_template(template_id)
        if template is None:
            raise ValidationError(f"Unknown SMS template: {template_id}")
        template_text = template.template

    merged = {"firstName": client.first_name, "lastName": client.last_name}
    merged.update(values or {})
    body = fill_template(template_text, merged)
    if len(body) > MAX_SMS_LENGTH:
        raise ValidationError(f"Message exceeds {MAX_SMS_LENGTH} characters")
    return body


async def send_client_sms(
    db: Session,
    ctx: RequestContext,
    sender: SmsSender,
    client_id: UUID,
    template_id: str,
    custom_message: str | None = None,
    values: dict[str, str] | None = None,
) -> SentSms:
    """
    Raises:
        NotFoundError: unknown client
        ValidationError: no usable phone, unknown template, empty message
        TransportError: provider failure
    """
    client = db.scalar(
        select(Client).where(Client.id == client_id, Client.organization_id == ctx.org_id)
    )
    if not client:
        raise NotFoundError("Client not found")
    if not is_valid_phone_number(client.phone):
        raise ValidationError("Client has no valid phone number")

    body = render_sms(client, template_id, custom_message, values)
    message_id = await sender.send(client.phone, body)

    activity_service.log_activity(
        db,
        organization_id=ctx.org_id,
        client_id=client.id,
        actor_user_id=ctx.user_id,
        payload=SmsSentActivity(
            template_id=template_id,
            message_id=message_id,
            message_preview=body[:100],
        ),
        description=f"SMS sent ({template_id})",
    )
    db.commit()
    logger.info(
        "SMS sent",
        extra=build_log_context(org_id=ctx.org_id, user_id=ctx.user_id, request_id=ctx.request_id),
    )
    return SentSms(message_id=message_id, body=body)
