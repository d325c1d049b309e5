"""Activity log enums."""

from enum import Enum


class ActivityKind(str, Enum):
    """Kinds of client activity recorded in the activity log."""

    EMAIL_SENT = "email_sent"
    SMS_SENT = "sms_sent"
    DOCUMENT_REQUEST_CREATED = "document_request_created"
    DOCUMENT_UPLOADED = "document_uploaded"
    INTAKE_SUBMITTED = "intake_submitted"
    CAMPAIGN_ENROLLED = "campaign_enrolled"
