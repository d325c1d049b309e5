"""SQLAlchemy ORM models."""

from taxdesk.db.models.activity import ActivityLog
from taxdesk.db.models.campaigns import CampaignEnrollment
from taxdesk.db.models.clients import Client
from taxdesk.db.models.documents import Document, DocumentRequest, DocumentRequestItem
from taxdesk.db.models.intake import IntakeLink
from taxdesk.db.models.organizations import Organization, User
from taxdesk.db.models.tasks import Task

__all__ = [
    "ActivityLog",
    "CampaignEnrollment",
    "Client",
    "Document",
    "DocumentRequest",
    "DocumentRequestItem",
    "IntakeLink",
    "Organization",
    "Task",
    "User",
]
