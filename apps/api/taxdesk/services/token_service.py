"""Bearer tokens for client-facing links (document uploads, intake forms)."""

from __future__ import annotations

import re
import secrets
from datetime import datetime
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.orm import Session

from taxdesk.core.config import settings
from taxdesk.utils.datetime_utils import add_days, utcnow

TOKEN_BYTES = 16  # 128 bits, rendered as 32 hex chars
TOKEN_PATTERN = re.compile(r"^[0-9a-f]{32}$")

UPLOAD_PATH_PREFIX = "/upload/"
INTAKE_PATH_PREFIX = "/intake/"


def issue_token() -> str:
    """Return a cryptographically random hex token. Caller persists it."""
    return secrets.token_hex(TOKEN_BYTES)


def issue_unique_token(db: Session, model) -> str:
    """Issue a token not already present in ``model.token``."""
    token = issue_token()
    while db.scalar(select(model.id).where(model.token == token)) is not None:
        token = issue_token()
    return token


def expiry_from(days: int, now: datetime | None = None) -> datetime:
    """now + days, calendar-day arithmetic in UTC."""
    return add_days(now or utcnow(), days)


def is_well_formed(token: str | None) -> bool:
    return bool(token) and TOKEN_PATTERN.match(token) is not None


def build_upload_url(token: str, base_url: str | None = None) -> str:
    base = (base_url or settings.frontend_base_url).rstrip("/")
    return f"{base}{UPLOAD_PATH_PREFIX}{token}"


def build_intake_url(token: str | None, base_url: str | None = None) -> str:
    """Personalized intake URL, or the generic new-intake page without a token."""
    base = (base_url or settings.frontend_base_url).rstrip("/")
    if not token:
        return f"{base}{INTAKE_PATH_PREFIX}new"
    return f"{base}{INTAKE_PATH_PREFIX}{token}"


def extract_token_from_url(url: str, prefix: str = UPLOAD_PATH_PREFIX) -> str | None:
    """Return the token segment following ``prefix`` in a link's path."""
    path = urlparse(url).path
    if prefix not in path:
        return None
    token = path.split(prefix, 1)[1].strip("/").split("/", 1)[0]
    return token or None
