"""Public token-authenticated uploads.

Checks run in a fixed order so callers get a deterministic error:
token, expiry, file type, file size, item membership, item state.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import UploadFile
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from taxdesk.core.errors import ConflictError, ExpiredError, ServiceError, ValidationError
from taxdesk.core.structured_logging import build_log_context
from taxdesk.db.enums import DocumentRequestItemStatus
from taxdesk.services import document_request_service, storage_service
from taxdesk.services.document_request_service import UploadedFileMeta
from taxdesk.utils.datetime_utils import utcnow
from taxdesk.utils.file_upload import (
    DOCUMENT_REQUEST_UPLOAD_POLICY,
    UploadPolicy,
    get_upload_file_size,
    read_upload_bounded,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadResult:
    item_id: UUID
    file_name: str
    file_size: int
    all_complete: bool


def _parse_item_id(raw: str | None) -> UUID:
    try:
        return UUID(str(raw))
    except (TypeError, ValueError):
        raise ValidationError("Invalid item for this request") from None


async def read_validated_file(file: UploadFile, policy: UploadPolicy) -> bytes:
    """Type then size, rejecting oversize files before reading them whole."""
    policy.check_type(file.content_type)
    policy.check_size(await get_upload_file_size(file))
    return await read_upload_bounded(file, policy.max_size_bytes)


async def store_upload(storage_key: str, data: bytes, content_type: str) -> None:
    """
    Write an accepted upload. A taken key belongs to a concurrent upload and
    is left untouched.
    """
    try:
        await run_in_threadpool(
            storage_service.store_file, storage_key, io.BytesIO(data), content_type
        )
    except storage_service.StorageKeyExistsError:
        raise ConflictError("This file is already being uploaded") from None


async def discard_upload(storage_key: str) -> None:
    try:
        await run_in_threadpool(storage_service.delete_file, storage_key)
    except Exception:
        logger.exception("Failed to remove orphaned upload")


async def upload_document(
    db: Session,
    token: str,
    item_id: str | None,
    file: UploadFile | None,
    now: datetime | None = None,
) -> UploadResult:
    """
    Accept one file for one checklist item.

    Raises:
        NotFoundError: token does not resolve
        ExpiredError: request expired (expiry persisted on first detection)
        ValidationError: bad type, size or item
        ConflictError: item already uploaded
    """
    now = now or utcnow()

    # 1-2: token and expiry
    request = document_request_service.get_request_by_token(db, token, now)
    if document_request_service.is_link_expired(request, now):
        raise ExpiredError("This upload link has expired")

    # 3-4: file policy
    if file is None:
        raise ValidationError("No file provided")
    data = await read_validated_file(file, DOCUMENT_REQUEST_UPLOAD_POLICY)

    # 5-6: item
    target_id = _parse_item_id(item_id)
    item = next((i for i in request.items if i.id == target_id), None)
    if item is None:
        raise ValidationError("Invalid item for this request")
    if item.status == DocumentRequestItemStatus.UPLOADED.value:
        raise ConflictError("This document has already been uploaded")

    file_name = file.filename or "file"
    content_type = (file.content_type or "").lower()
    storage_key = storage_service.document_request_path(request.id, file_name, now)
    await store_upload(storage_key, data, content_type)

    try:
        recorded = document_request_service.record_upload(
            db,
            token,
            item.id,
            UploadedFileMeta(
                storage_path=storage_key,
                file_name=file_name,
                mime_type=content_type,
                size=len(data),
            ),
            now,
        )
    except ServiceError:
        await discard_upload(storage_key)
        raise
    except Exception:
        db.rollback()
        await discard_upload(storage_key)
        raise

    logger.info(
        "Document uploaded via request link",
        extra=build_log_context(
            org_id=request.organization_id, document_request_id=request.id
        ),
    )
    return UploadResult(
        item_id=recorded.item.id,
        file_name=file_name,
        file_size=len(data),
        all_complete=recorded.all_complete,
    )
