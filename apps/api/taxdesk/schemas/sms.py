"""SMS schemas."""

from pydantic import BaseModel, Field


class SmsSendRequest(BaseModel):
    template_id: str = Field(..., min_length=1, max_length=50)
    custom_message: str | None = Field(None, max_length=1600)
    values: dict[str, str] = Field(default_factory=dict)


class SmsSendResponse(BaseModel):
    success: bool = True
    message_id: str | None
    body: str
