"""Upload policies and safe upload size checks."""

from __future__ import annotations

from dataclasses import dataclass
from os import SEEK_END

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from taxdesk.core.errors import ValidationError


MULTIPART_OVERHEAD_BYTES = 64 * 1024
READ_CHUNK_BYTES = 1024 * 1024


@dataclass(frozen=True)
class UploadPolicy:
    """Allowed MIME types and size ceiling for one upload path."""

    name: str
    allowed_mime_types: frozenset[str]
    max_size_bytes: int
    allowed_label: str

    @property
    def max_size_mb(self) -> int:
        return self.max_size_bytes // (1024 * 1024)

    def check_type(self, content_type: str | None) -> None:
        if (content_type or "").lower() not in self.allowed_mime_types:
            raise ValidationError(f"File type not allowed. Accepted: {self.allowed_label}")

    def check_size(self, size: int) -> None:
        if size > self.max_size_bytes:
            raise ValidationError(f"File too large. Maximum size is {self.max_size_mb} MB.")
        if size <= 0:
            raise ValidationError("File is empty")


# Client document-request uploads (public upload page)
DOCUMENT_REQUEST_UPLOAD_POLICY = UploadPolicy(
    name="document_request",
    allowed_mime_types=frozenset(
        {"application/pdf", "image/jpeg", "image/png", "image/heic", "image/heif"}
    ),
    max_size_bytes=25 * 1024 * 1024,
    allowed_label="PDF, JPG, PNG, HEIC",
)

# Intake questionnaire attachments; intentionally not unified with the above
INTAKE_UPLOAD_POLICY = UploadPolicy(
    name="intake",
    allowed_mime_types=frozenset({"application/pdf", "image/jpeg", "image/png", "image/heic"}),
    max_size_bytes=10 * 1024 * 1024,
    allowed_label="PDF, JPG, PNG, HEIC",
)


def content_length_exceeds_limit(
    content_length_header: str | None,
    *,
    max_size_bytes: int,
    overhead_bytes: int = MULTIPART_OVERHEAD_BYTES,
) -> bool:
    """Return True when Content-Length clearly exceeds the allowed file size."""
    if not content_length_header:
        return False
    try:
        content_length = int(content_length_header)
    except (TypeError, ValueError):
        return False
    return content_length > (max_size_bytes + overhead_bytes)


async def get_upload_file_size(file: UploadFile) -> int:
    """Read size from the underlying file object without loading into memory."""

    def _get_size() -> int:
        stream = file.file
        original_pos = stream.tell()
        try:
            stream.seek(0, SEEK_END)
            return stream.tell()
        finally:
            stream.seek(original_pos)

    return await run_in_threadpool(_get_size)


async def read_upload_bounded(file: UploadFile, max_size_bytes: int) -> bytes:
    """Read an upload in chunks, stopping as soon as it passes the limit."""
    await file.seek(0)
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size_bytes:
            raise ValidationError(
                f"File too large. Maximum size is {max_size_bytes // (1024 * 1024)} MB."
            )
        chunks.append(chunk)
    return b"".join(chunks)
