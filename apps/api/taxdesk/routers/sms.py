"""Staff SMS endpoint."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taxdesk.core.context import RequestContext
from taxdesk.core.deps import get_db, get_request_context
from taxdesk.schemas.sms import SmsSendRequest, SmsSendResponse
from taxdesk.services import sms_service
from taxdesk.services.sms_sender import SmsSender, get_sms_sender

router = APIRouter(tags=["sms"])


@router.post("/clients/{client_id}/sms", response_model=SmsSendResponse)
async def send_sms(
    client_id: UUID,
    data: SmsSendRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    sender: SmsSender = Depends(get_sms_sender),
):
    sent = await sms_service.send_client_sms(
        db,
        ctx,
        sender,
        client_id,
        data.template_id,
        custom_message=data.custom_message,
        values=data.values,
    )
    return SmsSendResponse(message_id=sent.message_id, body=sent.body)
