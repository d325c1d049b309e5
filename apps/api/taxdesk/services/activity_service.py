"""Activity logging service - centralized client activity tracking."""

from uuid import UUID

from sqlalchemy.orm import Session

from taxdesk.db.enums import ActivityKind
from taxdesk.db.models import ActivityLog
from taxdesk.schemas.activity import ActivityPayload, activity_payload_adapter


def log_activity(
    db: Session,
    *,
    organization_id: UUID,
    client_id: UUID | None,
    payload: ActivityPayload,
    description: str,
    actor_user_id: UUID | None = None,
) -> ActivityLog:
    """
    Log a client activity.

    Args:
        db: Database session
        organization_id: Organization context
        client_id: The client this activity is for
        payload: One of the ActivityPayload variants
        description: Human-readable summary for the timeline
        actor_user_id: User who performed the action (None for system/public)

    Returns:
        The created activity log entry
    """
    activity = ActivityLog(
        organization_id=organization_id,
        client_id=client_id,
        actor_user_id=actor_user_id,
        kind=ActivityKind(payload.kind).value,
        description=description[:500],
        payload=payload.model_dump(mode="json"),
    )
    db.add(activity)
    db.flush()  # Don't commit - let caller control transaction
    return activity


def read_payload(activity: ActivityLog) -> ActivityPayload:
    """Parse a stored payload back into its typed variant."""
    return activity_payload_adapter.validate_python(activity.payload)
