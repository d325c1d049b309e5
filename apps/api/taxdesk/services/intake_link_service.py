"""Self-service intake links: issue, validate, submit, attach files."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from taxdesk.core.config import settings
from taxdesk.core.context import RequestContext
from taxdesk.core.errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from taxdesk.core.structured_logging import build_log_context
from taxdesk.db.enums import DocumentCategory
from taxdesk.db.models import Client, Document, IntakeLink
from taxdesk.schemas.activity import IntakeSubmittedActivity
from taxdesk.services import activity_service, storage_service, token_service
from taxdesk.services.upload_gateway import discard_upload, read_validated_file, store_upload
from taxdesk.utils.datetime_utils import utcnow
from taxdesk.utils.file_upload import INTAKE_UPLOAD_POLICY

logger = logging.getLogger(__name__)

MAX_LINK_TTL_DAYS = 365


@dataclass(frozen=True)
class IntakeUploadResult:
    storage_path: str
    file_name: str
    file_size: int
    document_id: UUID | None


def build_intake_link(
    db: Session,
    *,
    org_id: UUID,
    created_by_user_id: UUID | None = None,
    client: Client | None = None,
    email: str | None = None,
    prefill_first_name: str | None = None,
    prefill_last_name: str | None = None,
    expires_in_days: int | None = None,
    now: datetime | None = None,
) -> IntakeLink:
    """Add a new link to the session (flush only)."""
    now = now or utcnow()
    days = expires_in_days or settings.INTAKE_LINK_TTL_DAYS
    if days < 1 or days > MAX_LINK_TTL_DAYS:
        raise ValidationError(f"Expiry must be between 1 and {MAX_LINK_TTL_DAYS} days")

    link = IntakeLink(
        organization_id=org_id,
        client_id=client.id if client else None,
        created_by_user_id=created_by_user_id,
        token=token_service.issue_unique_token(db, IntakeLink),
        email=email or (client.email if client else None),
        expires_at=token_service.expiry_from(days, now),
        prefill_first_name=prefill_first_name or (client.first_name if client else None),
        prefill_last_name=prefill_last_name or (client.last_name if client else None),
        created_at=now,
    )
    db.add(link)
    db.flush()
    return link


def create_intake_link(
    db: Session,
    ctx: RequestContext,
    *,
    client_id: UUID | None = None,
    email: str | None = None,
    prefill_first_name: str | None = None,
    prefill_last_name: str | None = None,
    expires_in_days: int | None = None,
) -> IntakeLink:
    client = None
    if client_id is not None:
        client = db.scalar(
            select(Client).where(Client.id == client_id, Client.organization_id == ctx.org_id)
        )
        if not client:
            raise ValidationError("Client not found")

    link = build_intake_link(
        db,
        org_id=ctx.org_id,
        created_by_user_id=ctx.user_id,
        client=client,
        email=email,
        prefill_first_name=prefill_first_name,
        prefill_last_name=prefill_last_name,
        expires_in_days=expires_in_days,
    )
    db.commit()
    db.refresh(link)
    return link


def validate_intake_link(db: Session, token: str, now: datetime | None = None) -> IntakeLink:
    """
    Return the link if it is active.

    Raises:
        NotFoundError: unknown token
        ConflictError: already used
        ExpiredError: past expires_at
    """
    now = now or utcnow()
    if not token_service.is_well_formed(token):
        raise NotFoundError("Invalid intake link")
    link = db.scalar(select(IntakeLink).where(IntakeLink.token == token))
    if not link:
        raise NotFoundError("Invalid intake link")
    if link.used_at is not None:
        raise ConflictError("This intake link has already been used")
    if link.expires_at <= now:
        raise ExpiredError("This intake link has expired")
    return link


def submit_intake(
    db: Session,
    token: str,
    answers: dict[str, Any],
    now: datetime | None = None,
) -> IntakeLink:
    """
    Store answers and consume the link. First submission wins.

    Setting ``used_at`` is the conversion signal for drip enrollments.
    """
    now = now or utcnow()
    link = validate_intake_link(db, token, now)

    consumed = db.execute(
        update(IntakeLink)
        .where(
            IntakeLink.id == link.id,
            IntakeLink.used_at.is_(None),
            IntakeLink.expires_at > now,
        )
        .values(used_at=now, answers=answers)
        .execution_options(synchronize_session=False)
    )
    if consumed.rowcount != 1:
        db.rollback()
        raise ConflictError("This intake link has already been used")

    if link.client_id:
        activity_service.log_activity(
            db,
            organization_id=link.organization_id,
            client_id=link.client_id,
            payload=IntakeSubmittedActivity(intake_link_id=link.id),
            description="Client submitted intake questionnaire",
        )
    db.commit()
    db.refresh(link)
    logger.info("Intake submitted", extra=build_log_context(org_id=link.organization_id))
    return link


async def upload_intake_file(
    db: Session,
    token: str,
    file: UploadFile,
    now: datetime | None = None,
) -> IntakeUploadResult:
    """Attach a file to an intake under the intake upload policy."""
    now = now or utcnow()
    link = validate_intake_link(db, token, now)
    data = await read_validated_file(file, INTAKE_UPLOAD_POLICY)

    file_name = file.filename or "file"
    content_type = (file.content_type or "").lower()
    storage_key = storage_service.intake_upload_path(file_name, now)
    await store_upload(storage_key, data, content_type)

    document_id = None
    if link.client_id:
        document = Document(
            organization_id=link.organization_id,
            client_id=link.client_id,
            name=file_name,
            storage_path=storage_key,
            mime_type=content_type,
            file_size=len(data),
            category=DocumentCategory.INTAKE.value,
            created_at=now,
        )
        try:
            db.add(document)
            db.commit()
        except Exception:
            db.rollback()
            await discard_upload(storage_key)
            raise
        document_id = document.id

    return IntakeUploadResult(
        storage_path=storage_key,
        file_name=file_name,
        file_size=len(data),
        document_id=document_id,
    )
