"""Drip campaign schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CampaignStartRequest(BaseModel):
    """Enroll every eligible client, or only the listed ones."""
    client_ids: list[UUID] | None = None


class EnrollmentError(BaseModel):
    client_id: UUID
    error: str


class CampaignStartResponse(BaseModel):
    enrolled: int
    failed: int
    total: int
    remaining: int
    errors: list[EnrollmentError]


class CampaignUnsubscribeRequest(BaseModel):
    client_id: UUID


class CampaignUpdateResponse(BaseModel):
    updated: int


class CampaignStatsRead(BaseModel):
    campaign_name: str
    total: int
    by_status: dict[str, int]
    active_by_stage: dict[str, int]
    clients_with_email: int
    not_enrolled: int


class DripDueSummary(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    due_for_processing: int
    active_by_stage: dict[str, int]
    checked_at: datetime


class DripRunResponse(BaseModel):
    processed: int
    completed: int
    advanced: int
    errors: int
