"""Enum definitions for application constants."""

from taxdesk.db.enums.activity import ActivityKind
from taxdesk.db.enums.campaigns import CampaignEmailType, EnrollmentStatus
from taxdesk.db.enums.documents import (
    DocumentCategory,
    DocumentRequestItemStatus,
    DocumentRequestStatus,
)
from taxdesk.db.enums.tasks import TaskPriority, TaskStatus

__all__ = [
    "ActivityKind",
    "CampaignEmailType",
    "DocumentCategory",
    "DocumentRequestItemStatus",
    "DocumentRequestStatus",
    "EnrollmentStatus",
    "TaskPriority",
    "TaskStatus",
]
