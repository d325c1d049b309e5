"""Campaign-related enums."""

from enum import Enum


class EnrollmentStatus(str, Enum):
    """Status of a drip campaign enrollment."""

    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    UNSUBSCRIBED = "unsubscribed"


class CampaignEmailType(str, Enum):
    """Email template used at each drip stage."""

    INTRO = "intro"
    REFUND_AMOUNTS = "refund_amounts"
    URGENCY = "urgency"
