"""Explicit caller context threaded through service calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4


@dataclass(frozen=True)
class RequestContext:
    """Who is acting, for which organization, under which request id."""

    org_id: UUID
    user_id: UUID | None = None
    request_id: str = field(default_factory=lambda: uuid4().hex)
