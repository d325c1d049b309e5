"""Stored client documents: signed downloads and deletion."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from taxdesk.core.context import RequestContext
from taxdesk.core.errors import NotFoundError, UnexpectedError
from taxdesk.core.structured_logging import build_log_context
from taxdesk.db.models import Document, DocumentRequestItem
from taxdesk.services import storage_service

logger = logging.getLogger(__name__)


def get_document(db: Session, org_id: UUID, document_id: UUID) -> Document:
    document = db.scalar(
        select(Document).where(Document.id == document_id, Document.organization_id == org_id)
    )
    if not document:
        raise NotFoundError("Document not found")
    return document


async def get_download_url(db: Session, ctx: RequestContext, document_id: UUID) -> str:
    document = get_document(db, ctx.org_id, document_id)
    url = await run_in_threadpool(storage_service.generate_signed_url, document.storage_path)
    if not url:
        raise UnexpectedError("Could not generate download link")
    return url


async def delete_document(db: Session, ctx: RequestContext, document_id: UUID) -> None:
    """
    Remove the stored object, then the record.

    A missing object is tolerated; any other storage failure leaves the
    record in place so the delete can be retried.
    """
    document = get_document(db, ctx.org_id, document_id)
    await run_in_threadpool(storage_service.delete_file, document.storage_path)

    # Uploaded checklist items keep their file metadata but lose the link
    db.execute(
        update(DocumentRequestItem)
        .where(DocumentRequestItem.document_id == document.id)
        .values(document_id=None)
        .execution_options(synchronize_session=False)
    )
    db.delete(document)
    db.commit()
    logger.info(
        "Document deleted",
        extra=build_log_context(org_id=ctx.org_id, user_id=ctx.user_id, request_id=ctx.request_id),
    )
