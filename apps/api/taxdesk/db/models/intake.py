"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxdesk.db.base import Base
from taxdesk.db.types import JsonType
from taxdesk.utils.datetime_utils import utcnow

if TYPE_CHECKING:
    from taxdesk.db.models import Client


class IntakeLink(Base):
    """
    Self-service intake questionnaire link.

    Active iff ``used_at`` is NULL and ``expires_at`` is in the future.
    ``used_at`` is terminal once set.
    """

    __tablename__ = "intake_links"
    __table_args__ = (
        Index("idx_intake_links_token", "token", unique=True),
        Index("idx_intake_links_client", "client_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    token: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    prefill_first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    prefill_last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    answers: Mapped[dict | None] = mapped_column(JsonType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    client: Mapped["Client | None"] = relationship(back_populates="intake_links")

    def is_active(self, now: datetime) -> bool:
        return self.used_at is None and self.expires_at > now
