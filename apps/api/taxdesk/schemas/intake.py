"""Intake link schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class IntakeLinkCreate(BaseModel):
    client_id: UUID | None = None
    email: EmailStr | None = None
    prefill_first_name: str | None = Field(None, max_length=100)
    prefill_last_name: str | None = Field(None, max_length=100)
    expires_in_days: int | None = Field(None, ge=1, le=365)


class IntakeLinkRead(BaseModel):
    id: UUID
    client_id: UUID | None
    token: str
    url: str
    email: str | None
    expires_at: datetime


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublicIntakeLink(_CamelModel):
    """What the public intake page needs to prefill itself."""
    email: str | None
    prefill_first_name: str | None
    prefill_last_name: str | None
    expires_at: datetime


class IntakeSubmit(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


class IntakeSubmitResponse(BaseModel):
    success: bool = True


class IntakeUploadResponse(_CamelModel):
    success: bool = True
    path: str
    file_name: str
    file_size: int
