"""Activity log payloads, discriminated on ``kind``."""

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter


class EmailSentActivity(BaseModel):
    kind: Literal["email_sent"] = "email_sent"
    email_type: str  # document_request | document_reminder | intro | refund_amounts | urgency
    message_id: str | None = None
    documents: list[str] = Field(default_factory=list)


class SmsSentActivity(BaseModel):
    kind: Literal["sms_sent"] = "sms_sent"
    template_id: str
    message_id: str | None = None
    message_preview: str = Field("", max_length=100)


class DocumentRequestCreatedActivity(BaseModel):
    kind: Literal["document_request_created"] = "document_request_created"
    document_request_id: UUID
    item_names: list[str]
    task_id: UUID | None = None


class DocumentUploadedActivity(BaseModel):
    kind: Literal["document_uploaded"] = "document_uploaded"
    document_request_id: UUID
    item_id: UUID
    document_id: UUID
    file_size: int
    request_completed: bool = False


class IntakeSubmittedActivity(BaseModel):
    kind: Literal["intake_submitted"] = "intake_submitted"
    intake_link_id: UUID


class CampaignEnrolledActivity(BaseModel):
    kind: Literal["campaign_enrolled"] = "campaign_enrolled"
    campaign_name: str
    enrollment_id: UUID


ActivityPayload = Annotated[
    Union[
        EmailSentActivity,
        SmsSentActivity,
        DocumentRequestCreatedActivity,
        DocumentUploadedActivity,
        IntakeSubmittedActivity,
        CampaignEnrolledActivity,
    ],
    Field(discriminator="kind"),
]

activity_payload_adapter: TypeAdapter[ActivityPayload] = TypeAdapter(ActivityPayload)
