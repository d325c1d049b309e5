"""Public intake link endpoints (token-authenticated, no session)."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.orm import Session

from taxdesk.core.deps import get_db
from taxdesk.core.rate_limit import PUBLIC_LIMIT, limiter
from taxdesk.schemas.intake import (
    IntakeSubmit,
    IntakeSubmitResponse,
    IntakeUploadResponse,
    PublicIntakeLink,
)
from taxdesk.services import intake_link_service

router = APIRouter(prefix="/public/intake", tags=["public"])


@router.get("/{token}", response_model=PublicIntakeLink)
@limiter.limit(PUBLIC_LIMIT)
def get_public_intake(request: Request, token: str, db: Session = Depends(get_db)):
    link = intake_link_service.validate_intake_link(db, token)
    return PublicIntakeLink(
        email=link.email,
        prefill_first_name=link.prefill_first_name,
        prefill_last_name=link.prefill_last_name,
        expires_at=link.expires_at,
    )


@router.post("/{token}/submit", response_model=IntakeSubmitResponse)
@limiter.limit(PUBLIC_LIMIT)
def submit_intake(
    request: Request,
    token: str,
    data: IntakeSubmit,
    db: Session = Depends(get_db),
):
    intake_link_service.submit_intake(db, token, data.answers)
    return IntakeSubmitResponse()


@router.post("/{token}/uploads", response_model=IntakeUploadResponse)
@limiter.limit(PUBLIC_LIMIT)
async def upload_intake_file(
    request: Request,
    token: str,
    file: Annotated[UploadFile, File()],
    db: Session = Depends(get_db),
):
    result = await intake_link_service.upload_intake_file(db, token, file)
    return IntakeUploadResponse(
        path=result.storage_path,
        file_name=result.file_name,
        file_size=result.file_size,
    )
