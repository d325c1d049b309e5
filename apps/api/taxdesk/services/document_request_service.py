"""Document request engine: checklist creation, lazy expiry, upload recording.

Status rules:
- ``completed`` when every item is uploaded, ``partially_uploaded`` when some
  are, ``pending`` otherwise.
- Once ``expires_at`` has passed, a non-completed request becomes ``expired``
  on its next access. ``completed`` and ``expired`` are terminal.
- Item ``uploaded`` is terminal; the pending -> uploaded flip is a
  compare-and-set so concurrent uploads to one item cannot both win.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from taxdesk.core.config import settings
from taxdesk.core.context import RequestContext
from taxdesk.core.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from taxdesk.core.structured_logging import build_log_context
from taxdesk.db.enums import (
    DocumentCategory,
    DocumentRequestItemStatus,
    DocumentRequestStatus,
    TaskPriority,
    TaskStatus,
)
from taxdesk.db.models import Client, Document, DocumentRequest, DocumentRequestItem, Task
from taxdesk.schemas.activity import (
    DocumentRequestCreatedActivity,
    DocumentUploadedActivity,
    EmailSentActivity,
)
from taxdesk.services import activity_service, token_service
from taxdesk.services.email_sender import EmailMessage, EmailSender
from taxdesk.services.email_templates import (
    ChecklistEntry,
    document_reminder_email,
    document_request_email,
)
from taxdesk.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (
    DocumentRequestStatus.COMPLETED.value,
    DocumentRequestStatus.EXPIRED.value,
)
MAX_ITEMS_PER_REQUEST = 50


@dataclass(frozen=True)
class ChecklistItemInput:
    name: str
    description: str | None = None


@dataclass(frozen=True)
class UploadedFileMeta:
    """Metadata for a file already written to the object store."""

    storage_path: str
    file_name: str
    mime_type: str
    size: int


@dataclass(frozen=True)
class RecordedUpload:
    item: DocumentRequestItem
    document: Document
    request_status: str

    @property
    def all_complete(self) -> bool:
        return self.request_status == DocumentRequestStatus.COMPLETED.value


# =============================================================================
# Status derivation
# =============================================================================

def derive_items_status(item_statuses: Iterable[str]) -> str:
    """Aggregate status from item statuses alone."""
    statuses = list(item_statuses)
    uploaded = sum(1 for s in statuses if s == DocumentRequestItemStatus.UPLOADED.value)
    if statuses and uploaded == len(statuses):
        return DocumentRequestStatus.COMPLETED.value
    if uploaded:
        return DocumentRequestStatus.PARTIALLY_UPLOADED.value
    return DocumentRequestStatus.PENDING.value


def derive_request_status(
    item_statuses: Iterable[str],
    *,
    current_status: str,
    expires_at: datetime,
    now: datetime,
) -> str:
    """Full status rule: terminal states stick, expiry pre-empts progress."""
    if current_status in TERMINAL_STATUSES:
        return current_status
    if expires_at <= now:
        return DocumentRequestStatus.EXPIRED.value
    return derive_items_status(item_statuses)


def is_past_expiry(request: DocumentRequest, now: datetime) -> bool:
    return request.expires_at <= now


def is_link_expired(request: DocumentRequest, now: datetime) -> bool:
    """The public link is dead once expired, even for a completed request."""
    return request.status == DocumentRequestStatus.EXPIRED.value or is_past_expiry(request, now)


# =============================================================================
# Creation
# =============================================================================

def _normalize_items(items: list[ChecklistItemInput]) -> list[ChecklistItemInput]:
    if not items:
        raise ValidationError("No documents specified")
    if len(items) > MAX_ITEMS_PER_REQUEST:
        raise ValidationError(f"At most {MAX_ITEMS_PER_REQUEST} documents per request")
    normalized = []
    for item in items:
        name = (item.name or "").strip()
        if not name:
            raise ValidationError("Document name is required")
        description = (item.description or "").strip() or None
        normalized.append(ChecklistItemInput(name=name, description=description))
    return normalized


def get_client(db: Session, org_id: UUID, client_id: UUID) -> Client | None:
    return db.scalar(
        select(Client).where(Client.id == client_id, Client.organization_id == org_id)
    )


def create_request(
    db: Session,
    *,
    org_id: UUID,
    client_id: UUID,
    items: list[ChecklistItemInput],
    created_by_user_id: UUID | None,
    task_id: UUID | None = None,
    now: datetime | None = None,
) -> DocumentRequest:
    """
    Create a document request with one pending item per entry.

    Flushes only; the caller owns the transaction.

    Raises:
        ValidationError: empty checklist, unknown client or unknown task
    """
    now = now or utcnow()
    entries = _normalize_items(items)

    client = get_client(db, org_id, client_id)
    if not client:
        raise ValidationError("Client not found")

    if task_id is not None:
        task = db.scalar(select(Task).where(Task.id == task_id, Task.organization_id == org_id))
        if not task:
            raise ValidationError("Linked task not found")

    request = DocumentRequest(
        organization_id=org_id,
        client_id=client.id,
        task_id=task_id,
        created_by_user_id=created_by_user_id,
        token=token_service.issue_unique_token(db, DocumentRequest),
        status=DocumentRequestStatus.PENDING.value,
        expires_at=token_service.expiry_from(settings.DOCUMENT_REQUEST_TTL_DAYS, now),
        created_at=now,
        updated_at=now,
    )
    request.items = [
        DocumentRequestItem(
            position=index,
            name=entry.name,
            description=entry.description,
            status=DocumentRequestItemStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        for index, entry in enumerate(entries)
    ]
    db.add(request)
    db.flush()

    activity_service.log_activity(
        db,
        organization_id=org_id,
        client_id=client.id,
        actor_user_id=created_by_user_id,
        payload=DocumentRequestCreatedActivity(
            document_request_id=request.id,
            item_names=[e.name for e in entries],
            task_id=task_id,
        ),
        description=f"Document request created ({len(entries)} documents)",
    )
    return request


# =============================================================================
# Lookup + lazy expiry
# =============================================================================

def _persist_expiry(db: Session, request: DocumentRequest, now: datetime) -> None:
    """Flip a lapsed request to expired exactly once."""
    result = db.execute(
        update(DocumentRequest)
        .where(
            DocumentRequest.id == request.id,
            DocumentRequest.status.notin_(TERMINAL_STATUSES),
        )
        .values(status=DocumentRequestStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(request)
    if result.rowcount:
        logger.info(
            "Document request expired",
            extra=build_log_context(org_id=request.organization_id, document_request_id=request.id),
        )


def apply_lazy_expiry(db: Session, request: DocumentRequest, now: datetime | None = None) -> DocumentRequest:
    now = now or utcnow()
    if request.status not in TERMINAL_STATUSES and is_past_expiry(request, now):
        _persist_expiry(db, request, now)
    return request


def get_request_by_token(db: Session, token: str, now: datetime | None = None) -> DocumentRequest:
    """
    Resolve a public token to its request (items loaded).

    A lapsed request is transitioned to ``expired`` and committed before
    returning; callers decide how to surface that.

    Raises:
        NotFoundError: token does not resolve
    """
    if not token_service.is_well_formed(token):
        raise NotFoundError("Invalid or unknown upload link")
    request = db.scalar(
        select(DocumentRequest)
        .options(selectinload(DocumentRequest.items), selectinload(DocumentRequest.client))
        .where(DocumentRequest.token == token)
    )
    if not request:
        raise NotFoundError("Invalid or unknown upload link")
    return apply_lazy_expiry(db, request, now)


def get_request(
    db: Session, org_id: UUID, request_id: UUID, now: datetime | None = None
) -> DocumentRequest:
    """Staff lookup by id within an organization."""
    request = db.scalar(
        select(DocumentRequest)
        .options(selectinload(DocumentRequest.items))
        .where(DocumentRequest.id == request_id, DocumentRequest.organization_id == org_id)
    )
    if not request:
        raise NotFoundError("Document request not found")
    return apply_lazy_expiry(db, request, now)


def sweep_expired_requests(db: Session, now: datetime | None = None) -> int:
    """Bulk-expire lapsed requests. Lazy expiry on read stays authoritative."""
    now = now or utcnow()
    result = db.execute(
        update(DocumentRequest)
        .where(
            DocumentRequest.expires_at <= now,
            DocumentRequest.status.notin_(TERMINAL_STATUSES),
        )
        .values(status=DocumentRequestStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount or 0


# =============================================================================
# Upload recording
# =============================================================================

def _recompute_status(db: Session, request: DocumentRequest, now: datetime) -> str:
    # Serialize recomputation per request so concurrent item uploads both land
    db.execute(
        select(DocumentRequest.id).where(DocumentRequest.id == request.id).with_for_update()
    )
    statuses = db.scalars(
        select(DocumentRequestItem.status).where(
            DocumentRequestItem.document_request_id == request.id
        )
    ).all()
    new_status = derive_request_status(
        statuses,
        current_status=request.status,
        expires_at=request.expires_at,
        now=now,
    )
    if new_status != request.status:
        request.status = new_status
        request.updated_at = now
    return new_status


def _complete_linked_task(db: Session, task_id: UUID, now: datetime) -> None:
    db.execute(
        update(Task)
        .where(Task.id == task_id, Task.status != TaskStatus.COMPLETED.value)
        .values(status=TaskStatus.COMPLETED.value, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )


def record_upload(
    db: Session,
    token: str,
    item_id: UUID,
    file_meta: UploadedFileMeta,
    now: datetime | None = None,
) -> RecordedUpload:
    """
    Mark one checklist item uploaded and create its Document.

    Raises:
        NotFoundError: bad token, or item not part of this request
        ExpiredError: request expired or past expires_at
        ConflictError: item already uploaded (including a lost race)
    """
    now = now or utcnow()
    request = get_request_by_token(db, token, now)
    if is_link_expired(request, now):
        raise ExpiredError("This upload link has expired")

    item = next((i for i in request.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Invalid item for this request")
    if item.status == DocumentRequestItemStatus.UPLOADED.value:
        raise ConflictError("This document has already been uploaded")

    claimed = db.execute(
        update(DocumentRequestItem)
        .where(
            DocumentRequestItem.id == item.id,
            DocumentRequestItem.status == DocumentRequestItemStatus.PENDING.value,
        )
        .values(
            status=DocumentRequestItemStatus.UPLOADED.value,
            uploaded_at=now,
            file_path=file_meta.storage_path,
            file_name=file_meta.file_name,
            file_size=file_meta.size,
            file_type=file_meta.mime_type,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.rollback()
        raise ConflictError("This document has already been uploaded")

    document = Document(
        organization_id=request.organization_id,
        client_id=request.client_id,
        name=item.name,
        storage_path=file_meta.storage_path,
        mime_type=file_meta.mime_type,
        file_size=file_meta.size,
        category=DocumentCategory.OTHER.value,
        created_at=now,
    )
    db.add(document)
    db.flush()

    db.execute(
        update(DocumentRequestItem)
        .where(DocumentRequestItem.id == item.id)
        .values(document_id=document.id)
        .execution_options(synchronize_session=False)
    )

    new_status = _recompute_status(db, request, now)
    if new_status == DocumentRequestStatus.COMPLETED.value and request.task_id:
        _complete_linked_task(db, request.task_id, now)

    activity_service.log_activity(
        db,
        organization_id=request.organization_id,
        client_id=request.client_id,
        payload=DocumentUploadedActivity(
            document_request_id=request.id,
            item_id=item.id,
            document_id=document.id,
            file_size=file_meta.size,
            request_completed=new_status == DocumentRequestStatus.COMPLETED.value,
        ),
        description=f"Client uploaded {item.name}",
    )

    db.commit()
    db.refresh(item)
    logger.info(
        "Document request item uploaded status=%s",
        new_status,
        extra=build_log_context(org_id=request.organization_id, document_request_id=request.id),
    )
    return RecordedUpload(item=item, document=document, request_status=new_status)


# =============================================================================
# Staff flows (email + task)
# =============================================================================

def _entries(items: Iterable[DocumentRequestItem]) -> list[ChecklistEntry]:
    return [ChecklistEntry(name=i.name, description=i.description) for i in items]


async def send_document_request(
    db: Session,
    ctx: RequestContext,
    sender: EmailSender,
    *,
    client_id: UUID,
    items: list[ChecklistItemInput],
    create_task: bool = True,
    send_email: bool = True,
    now: datetime | None = None,
) -> DocumentRequest:
    """
    Create a request, optionally with a tracking task, and email the link.

    Nothing is committed unless the email (when requested) was accepted.

    Raises:
        ValidationError: bad checklist, unknown client, client without email
        TransportError: email provider failure
    """
    now = now or utcnow()
    entries = _normalize_items(items)
    client = get_client(db, ctx.org_id, client_id)
    if not client:
        raise NotFoundError("Client not found")
    if send_email and not client.email:
        raise ValidationError("Client has no email address")

    task_id = None
    if create_task:
        count = len(entries)
        task = Task(
            organization_id=ctx.org_id,
            client_id=client.id,
            title=f"Collect {count} document{'s' if count > 1 else ''} from {client.first_name}",
            description="Documents requested:\n" + "\n".join(f"- {e.name}" for e in entries),
            priority=TaskPriority.HIGH.value,
            status=TaskStatus.PENDING.value,
            created_by_user_id=ctx.user_id,
            created_at=now,
            updated_at=now,
        )
        db.add(task)
        db.flush()
        task_id = task.id

    request = create_request(
        db,
        org_id=ctx.org_id,
        client_id=client.id,
        items=entries,
        created_by_user_id=ctx.user_id,
        task_id=task_id,
        now=now,
    )

    if send_email:
        rendered = document_request_email(
            client.first_name,
            _entries(request.items),
            token_service.build_upload_url(request.token),
            request.expires_at,
        )
        try:
            message_id = await sender.send(
                EmailMessage(
                    to=client.email, subject=rendered.subject, html=rendered.html, text=rendered.text
                ),
                idempotency_key=f"document-request/{request.id}",
            )
        except TransportError:
            db.rollback()
            logger.warning(
                "Document request email failed",
                extra=build_log_context(org_id=ctx.org_id, request_id=ctx.request_id),
            )
            raise
        activity_service.log_activity(
            db,
            organization_id=ctx.org_id,
            client_id=client.id,
            actor_user_id=ctx.user_id,
            payload=EmailSentActivity(
                email_type="document_request",
                message_id=message_id,
                documents=[e.name for e in entries],
            ),
            description=f"Document request email sent ({len(entries)} documents)",
        )

    db.commit()
    db.refresh(request)
    return request


async def remind_missing_documents(
    db: Session,
    ctx: RequestContext,
    sender: EmailSender,
    request_id: UUID,
    now: datetime | None = None,
) -> list[DocumentRequestItem]:
    """
    Email the client the items still pending on a request.

    Raises:
        NotFoundError: unknown request
        ExpiredError: request expired
        ConflictError: nothing left to upload
        ValidationError: client has no email
        TransportError: email provider failure
    """
    now = now or utcnow()
    request = get_request(db, ctx.org_id, request_id, now)
    if is_link_expired(request, now):
        raise ExpiredError("This document request has expired")

    missing = [i for i in request.items if i.status == DocumentRequestItemStatus.PENDING.value]
    if not missing:
        raise ConflictError("All requested documents have been uploaded")

    client = request.client
    if not client.email:
        raise ValidationError("Client has no email address")

    rendered = document_reminder_email(
        client.first_name, _entries(missing), token_service.build_upload_url(request.token)
    )
    message_id = await sender.send(
        EmailMessage(to=client.email, subject=rendered.subject, html=rendered.html, text=rendered.text)
    )
    activity_service.log_activity(
        db,
        organization_id=ctx.org_id,
        client_id=client.id,
        actor_user_id=ctx.user_id,
        payload=EmailSentActivity(
            email_type="document_reminder",
            message_id=message_id,
            documents=[i.name for i in missing],
        ),
        description=f"Document reminder sent ({len(missing)} documents)",
    )
    db.commit()
    return missing
