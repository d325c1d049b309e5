"""Staff drip campaign controls."""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taxdesk.core.context import RequestContext
from taxdesk.core.deps import get_db, get_request_context
from taxdesk.schemas.campaign import (
    CampaignStartRequest,
    CampaignStartResponse,
    CampaignStatsRead,
    CampaignUnsubscribeRequest,
    CampaignUpdateResponse,
    EnrollmentError,
)
from taxdesk.services import drip_campaign_service
from taxdesk.services.email_sender import EmailSender, get_email_sender

router = APIRouter(prefix="/drip-campaigns", tags=["campaigns"])


@router.get("/{campaign_name}", response_model=CampaignStatsRead)
def get_campaign_stats(
    campaign_name: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    stats = drip_campaign_service.campaign_stats(db, ctx, campaign_name)
    return CampaignStatsRead(
        campaign_name=stats.campaign_name,
        total=stats.total,
        by_status=stats.by_status,
        active_by_stage=stats.active_by_stage,
        clients_with_email=stats.clients_with_email,
        not_enrolled=stats.not_enrolled,
    )


@router.post("/{campaign_name}/start", response_model=CampaignStartResponse)
async def start_campaign(
    campaign_name: str,
    data: CampaignStartRequest | None = None,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Enroll the next batch of eligible clients.

    Call again while ``remaining`` is non-zero.
    """
    result = await drip_campaign_service.start_campaign(
        db,
        ctx,
        sender,
        campaign_name,
        client_ids=data.client_ids if data else None,
    )
    return CampaignStartResponse(
        enrolled=result.enrolled,
        failed=result.failed,
        total=result.total,
        remaining=result.remaining,
        errors=[
            EnrollmentError(client_id=UUID(e["client_id"]), error=e["error"])
            for e in result.errors
        ],
    )


@router.post("/{campaign_name}/pause", response_model=CampaignUpdateResponse)
def pause_campaign(
    campaign_name: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return CampaignUpdateResponse(
        updated=drip_campaign_service.pause_campaign(db, ctx, campaign_name)
    )


@router.post("/{campaign_name}/resume", response_model=CampaignUpdateResponse)
def resume_campaign(
    campaign_name: str,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return CampaignUpdateResponse(
        updated=drip_campaign_service.resume_campaign(db, ctx, campaign_name)
    )


@router.post("/{campaign_name}/unsubscribe", response_model=CampaignUpdateResponse)
def unsubscribe_client(
    campaign_name: str,
    data: CampaignUnsubscribeRequest,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    return CampaignUpdateResponse(
        updated=drip_campaign_service.unsubscribe(db, ctx, data.client_id, campaign_name)
    )
