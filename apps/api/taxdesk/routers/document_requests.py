"""Staff document request endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taxdesk.core.context import RequestContext
from taxdesk.core.deps import get_db, get_request_context
from taxdesk.db.models import DocumentRequest
from taxdesk.schemas.document_request import (
    DocumentRequestCreate,
    DocumentRequestItemRead,
    DocumentRequestRead,
    ReminderResponse,
)
from taxdesk.services import document_request_service, token_service
from taxdesk.services.document_request_service import ChecklistItemInput
from taxdesk.services.email_sender import EmailSender, get_email_sender

router = APIRouter(tags=["document-requests"])


def _to_read(doc_request: DocumentRequest) -> DocumentRequestRead:
    return DocumentRequestRead(
        id=doc_request.id,
        client_id=doc_request.client_id,
        task_id=doc_request.task_id,
        status=doc_request.status,
        expires_at=doc_request.expires_at,
        upload_url=token_service.build_upload_url(doc_request.token),
        created_at=doc_request.created_at,
        items=[DocumentRequestItemRead.model_validate(item) for item in doc_request.items],
    )


@router.post(
    "/clients/{client_id}/document-requests",
    response_model=DocumentRequestRead,
    status_code=201,
)
async def create_document_request(
    client_id: UUID,
    data: DocumentRequestCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    sender: EmailSender = Depends(get_email_sender),
):
    """Create a checklist for a client, optionally with a task and an email."""
    doc_request = await document_request_service.send_document_request(
        db,
        ctx,
        sender,
        client_id=client_id,
        items=[ChecklistItemInput(name=i.name, description=i.description) for i in data.items],
        create_task=data.create_task,
        send_email=data.send_email,
    )
    return _to_read(doc_request)


@router.get("/document-requests/{request_id}", response_model=DocumentRequestRead)
def get_document_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return _to_read(document_request_service.get_request(db, ctx.org_id, request_id))


@router.post("/document-requests/{request_id}/remind", response_model=ReminderResponse)
async def remind_document_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    sender: EmailSender = Depends(get_email_sender),
):
    """Email the client the items that are still missing."""
    missing = await document_request_service.remind_missing_documents(db, ctx, sender, request_id)
    return ReminderResponse(missing=[item.name for item in missing])
