"""Staff document endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from taxdesk.core.context import RequestContext
from taxdesk.core.deps import get_db, get_request_context
from taxdesk.schemas.document import DownloadUrlResponse
from taxdesk.services import document_service

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("/{document_id}/download", response_model=DownloadUrlResponse)
async def get_download_url(
    document_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Short-lived signed URL for one document."""
    url = await document_service.get_download_url(db, ctx, document_id)
    return DownloadUrlResponse(download_url=url)


@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    await document_service.delete_document(db, ctx, document_id)
    return Response(status_code=204)
