"""Staff intake link endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taxdesk.core.context import RequestContext
from taxdesk.core.deps import get_db, get_request_context
from taxdesk.schemas.intake import IntakeLinkCreate, IntakeLinkRead
from taxdesk.services import intake_link_service, token_service

router = APIRouter(prefix="/intake-links", tags=["intake"])


@router.post("", response_model=IntakeLinkRead, status_code=201)
def create_intake_link(
    data: IntakeLinkCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    link = intake_link_service.create_intake_link(
        db,
        ctx,
        client_id=data.client_id,
        email=data.email,
        prefill_first_name=data.prefill_first_name,
        prefill_last_name=data.prefill_last_name,
        expires_in_days=data.expires_in_days,
    )
    return IntakeLinkRead(
        id=link.id,
        client_id=link.client_id,
        token=link.token,
        url=token_service.build_intake_url(link.token),
        email=link.email,
        expires_at=link.expires_at,
    )
