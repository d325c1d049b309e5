"""Document request schemas for request/response validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Staff
# =============================================================================

class ChecklistItemIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)


class DocumentRequestCreate(BaseModel):
    """Request documents from a client."""
    items: list[ChecklistItemIn]
    create_task: bool = True
    send_email: bool = True


class DocumentRequestItemRead(BaseModel):
    id: UUID
    name: str
    description: str | None
    status: str
    uploaded_at: datetime | None
    document_id: UUID | None
    file_name: str | None
    file_size: int | None
    file_type: str | None

    model_config = {"from_attributes": True}


class DocumentRequestRead(BaseModel):
    id: UUID
    client_id: UUID
    task_id: UUID | None
    status: str
    expires_at: datetime
    upload_url: str
    created_at: datetime
    items: list[DocumentRequestItemRead]


class ReminderResponse(BaseModel):
    sent: bool = True
    missing: list[str]


class ExpirySweepResponse(BaseModel):
    expired: int


# =============================================================================
# Public (camelCase wire format)
# =============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublicRequestItem(_CamelModel):
    id: UUID
    name: str
    description: str | None
    status: str
    uploaded_at: datetime | None
    file_name: str | None
    file_size: int | None


class PublicDocumentRequest(_CamelModel):
    id: UUID
    status: str
    expires_at: datetime
    client_first_name: str
    items: list[PublicRequestItem]


class UploadResponse(_CamelModel):
    success: bool = True
    item_id: UUID
    file_name: str
    file_size: int
    all_complete: bool
