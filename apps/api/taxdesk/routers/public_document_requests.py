"""Public document request endpoints (token-authenticated, no session)."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session

from taxdesk.core.deps import get_db
from taxdesk.core.errors import ExpiredError, ValidationError
from taxdesk.core.rate_limit import PUBLIC_LIMIT, limiter
from taxdesk.schemas.document_request import (
    PublicDocumentRequest,
    PublicRequestItem,
    UploadResponse,
)
from taxdesk.services import document_request_service, upload_gateway
from taxdesk.utils.datetime_utils import utcnow
from taxdesk.utils.file_upload import (
    DOCUMENT_REQUEST_UPLOAD_POLICY,
    content_length_exceeds_limit,
)

router = APIRouter(prefix="/public/document-requests", tags=["public"])

DEFAULT_CLIENT_FIRST_NAME = "there"


@router.get("/{token}", response_model=PublicDocumentRequest)
@limiter.limit(PUBLIC_LIMIT)
def get_public_document_request(request: Request, token: str, db: Session = Depends(get_db)):
    """Status lookup for the client upload page. 404 unknown, 410 expired."""
    now = utcnow()
    doc_request = document_request_service.get_request_by_token(db, token, now)
    if document_request_service.is_link_expired(doc_request, now):
        raise ExpiredError("This upload link has expired")

    return PublicDocumentRequest(
        id=doc_request.id,
        status=doc_request.status,
        expires_at=doc_request.expires_at,
        client_first_name=doc_request.client.first_name or DEFAULT_CLIENT_FIRST_NAME,
        items=[
            PublicRequestItem(
                id=item.id,
                name=item.name,
                description=item.description,
                status=item.status,
                uploaded_at=item.uploaded_at,
                file_name=item.file_name,
                file_size=item.file_size,
            )
            for item in doc_request.items
        ],
    )


@router.post("/{token}/upload", response_model=UploadResponse)
@limiter.limit(PUBLIC_LIMIT)
async def upload_document(
    request: Request,
    token: str,
    file: Annotated[UploadFile | None, File()] = None,
    item_id: Annotated[str | None, Form(alias="itemId")] = None,
    db: Session = Depends(get_db),
):
    """Upload one file for one checklist item."""
    if content_length_exceeds_limit(
        request.headers.get("content-length"),
        max_size_bytes=DOCUMENT_REQUEST_UPLOAD_POLICY.max_size_bytes,
    ):
        # Token and expiry still take precedence over the size policy
        now = utcnow()
        doc_request = document_request_service.get_request_by_token(db, token, now)
        if document_request_service.is_link_expired(doc_request, now):
            raise ExpiredError("This upload link has expired")
        raise ValidationError(
            f"File too large. Maximum size is {DOCUMENT_REQUEST_UPLOAD_POLICY.max_size_mb} MB."
        )

    result = await upload_gateway.upload_document(db, token, item_id, file)
    return UploadResponse(
        item_id=result.item_id,
        file_name=result.file_name,
        file_size=result.file_size,
        all_complete=result.all_complete,
    )
