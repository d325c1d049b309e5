"""FastAPI dependencies for database access, caller context and internal auth."""

from typing import Generator
from uuid import UUID, uuid4

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from taxdesk.core.config import settings
from taxdesk.core.context import RequestContext
from taxdesk.core.security import parse_bearer_token, verify_secret
from taxdesk.db.session import SessionLocal

ORG_HEADER = "X-Organization-ID"
USER_HEADER = "X-User-ID"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _parse_uuid_header(value: str | None, name: str) -> UUID | None:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} header") from None


def get_request_context(
    request: Request,
    db: Session = Depends(get_db),
    x_organization_id: str | None = Header(None, alias=ORG_HEADER),
    x_user_id: str | None = Header(None, alias=USER_HEADER),
) -> RequestContext:
    """
    Build the caller context from headers set by the upstream auth gateway.

    Raises:
        HTTPException 401: organization header missing
        HTTPException 403: user is not an active member of the organization
    """
    from taxdesk.db.models import Organization, User

    org_id = _parse_uuid_header(x_organization_id, ORG_HEADER)
    if org_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if db.scalar(select(Organization.id).where(Organization.id == org_id)) is None:
        raise HTTPException(status_code=403, detail="Unknown organization")

    user_id = _parse_uuid_header(x_user_id, USER_HEADER)
    if user_id is not None:
        member = db.scalar(
            select(User.id).where(
                User.id == user_id,
                User.organization_id == org_id,
                User.is_active.is_(True),
            )
        )
        if member is None:
            raise HTTPException(status_code=403, detail="User not in organization")

    return RequestContext(
        org_id=org_id,
        user_id=user_id,
        request_id=getattr(request.state, "request_id", None) or uuid4().hex,
    )


def require_internal_secret(authorization: str | None = Header(None)) -> None:
    """Bearer-secret guard for /internal/scheduled/* endpoints."""
    if not settings.INTERNAL_SECRET:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if not verify_secret(parse_bearer_token(authorization), settings.INTERNAL_SECRET):
        raise HTTPException(status_code=401, detail="Unauthorized")
