"""
Internal endpoints for scheduled/cron operations.

Protected by ``Authorization: Bearer <INTERNAL_SECRET>``.
Call from an external cron every few minutes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taxdesk.core.deps import get_db, require_internal_secret
from taxdesk.schemas.campaign import DripDueSummary, DripRunResponse
from taxdesk.schemas.document_request import ExpirySweepResponse
from taxdesk.services import document_request_service, drip_campaign_service
from taxdesk.services.email_sender import EmailSender, get_email_sender

router = APIRouter(
    prefix="/internal/scheduled",
    tags=["internal"],
    dependencies=[Depends(require_internal_secret)],
)


@router.get("/drip-campaign", response_model=DripDueSummary)
def get_drip_due_summary(db: Session = Depends(get_db)):
    """What the next run would process. No side effects."""
    summary = drip_campaign_service.due_summary(db)
    return DripDueSummary(
        due_for_processing=summary.due_for_processing,
        active_by_stage=summary.active_by_stage,
        checked_at=summary.checked_at,
    )


@router.post("/drip-campaign", response_model=DripRunResponse)
async def run_drip_campaign(
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    result = await drip_campaign_service.process_due_enrollments(db, sender)
    return DripRunResponse(
        processed=result.processed,
        completed=result.completed,
        advanced=result.advanced,
        errors=result.errors,
    )


@router.post("/document-request-expiry", response_model=ExpirySweepResponse)
def sweep_document_request_expiry(db: Session = Depends(get_db)):
    """Housekeeping only; expiry is also applied on every read."""
    return ExpirySweepResponse(expired=document_request_service.sweep_expired_requests(db))
