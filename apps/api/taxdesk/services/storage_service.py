"""Object storage for client documents (S3-compatible or local disk)."""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from typing import BinaryIO
from urllib.parse import urlparse
from uuid import UUID

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import ClientError

from taxdesk.core.config import settings
from taxdesk.utils.datetime_utils import to_unix_millis

logger = logging.getLogger(__name__)

DOCUMENT_REQUEST_PREFIX = "document-requests"
INTAKE_UPLOAD_PREFIX = "intake-uploads"

_DOCUMENT_REQUEST_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")
_INTAKE_UNSAFE = re.compile(r"[^A-Za-z0-9.-]")


# =============================================================================
# Storage keys
# =============================================================================

def sanitize_filename(filename: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with '_'."""
    return _DOCUMENT_REQUEST_UNSAFE.sub("_", filename or "") or "file"


def sanitize_intake_filename(filename: str) -> str:
    """Intake uploads use the narrower [A-Za-z0-9.-] alphabet."""
    return _INTAKE_UNSAFE.sub("_", filename or "") or "file"


def document_request_path(request_id: UUID, filename: str, uploaded_at: datetime) -> str:
    return (
        f"{DOCUMENT_REQUEST_PREFIX}/{request_id}/"
        f"{to_unix_millis(uploaded_at)}-{sanitize_filename(filename)}"
    )


def intake_upload_path(filename: str, uploaded_at: datetime) -> str:
    return f"{INTAKE_UPLOAD_PREFIX}/{to_unix_millis(uploaded_at)}-{sanitize_intake_filename(filename)}"


# =============================================================================
# Backend selection
# =============================================================================

def _is_gcs_compat_endpoint(endpoint_url: str | None) -> bool:
    if not endpoint_url:
        return False
    hostname = (urlparse(endpoint_url).hostname or "").lower()
    return hostname == "storage.googleapis.com" or hostname.endswith(".storage.googleapis.com")


def get_s3_client() -> BaseClient:
    """Return a configured S3 client (supports S3-compatible endpoints)."""
    endpoint_url = settings.S3_ENDPOINT_URL.rstrip("/") if settings.S3_ENDPOINT_URL else None
    region = settings.S3_REGION or None
    if _is_gcs_compat_endpoint(endpoint_url) and region in (None, "us-east-1"):
        # GCS XML API expects region "auto" for SigV4 signing.
        region = "auto"

    config = None
    style = (settings.S3_URL_STYLE or "").strip().lower()
    if style in {"path", "virtual"}:
        config = Config(s3={"addressing_style": style})

    return boto3.client(
        "s3",
        region_name=region,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        endpoint_url=endpoint_url,
        config=config,
    )


def _get_local_storage_path() -> str:
    path = settings.LOCAL_STORAGE_PATH
    os.makedirs(path, exist_ok=True)
    return path


def _local_path(storage_key: str) -> str:
    root = os.path.realpath(_get_local_storage_path())
    path = os.path.realpath(os.path.join(root, storage_key))
    if not path.startswith(root + os.sep):
        raise ValueError("Storage key escapes storage root")
    return path


# =============================================================================
# File Operations
# =============================================================================

class StorageKeyExistsError(Exception):
    """An object already exists under the requested key."""


def store_file(storage_key: str, file: BinaryIO, content_type: str) -> None:
    """
    Store file to configured backend. Never overwrites an existing object.

    Raises:
        StorageKeyExistsError: the key is already taken
    """
    file.seek(0)
    data = file.read()

    if settings.STORAGE_BACKEND == "s3":
        try:
            get_s3_client().put_object(
                Bucket=settings.S3_BUCKET,
                Key=storage_key,
                Body=data,
                ContentType=content_type,
                ContentLength=len(data),
                IfNoneMatch="*",
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("PreconditionFailed", "412", "ConditionalRequestConflict"):
                raise StorageKeyExistsError(storage_key) from exc
            raise
        return

    path = _local_path(storage_key)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    try:
        with open(path, "xb") as f:
            f.write(data)
    except FileExistsError as exc:
        raise StorageKeyExistsError(storage_key) from exc


def delete_file(storage_key: str) -> None:
    """Delete a stored object. Missing objects are not an error."""
    if settings.STORAGE_BACKEND == "s3":
        try:
            get_s3_client().delete_object(Bucket=settings.S3_BUCKET, Key=storage_key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code not in ("NoSuchKey", "404"):
                raise
        return

    path = _local_path(storage_key)
    if os.path.exists(path):
        os.remove(path)


def generate_signed_url(storage_key: str) -> str | None:
    """Generate a short-lived download URL."""
    if settings.STORAGE_BACKEND == "s3":
        try:
            return get_s3_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": settings.S3_BUCKET, "Key": storage_key},
                ExpiresIn=settings.SIGNED_URL_EXPIRY_SECONDS,
            )
        except ClientError:
            logger.exception("Failed to sign storage URL")
            return None

    # Local: served by the dev static mount only
    return f"/dev/storage/{storage_key}"
