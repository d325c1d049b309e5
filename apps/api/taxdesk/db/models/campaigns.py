"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxdesk.db.base import Base
from taxdesk.db.enums import EnrollmentStatus
from taxdesk.utils.datetime_utils import utcnow

if TYPE_CHECKING:
    from taxdesk.db.models import Client, IntakeLink


class CampaignEnrollment(Base):
    """
    A client's progress through the drip email sequence.

    Advanced or completed only by the sequencer; paused/resumed/unsubscribed
    only by staff. One active row per (client, campaign_name) is expected but
    not enforced by the schema.
    """

    __tablename__ = "campaign_enrollments"
    __table_args__ = (
        Index("idx_campaign_enrollments_due", "status", "next_email_due_at"),
        Index("idx_campaign_enrollments_client_campaign", "client_id", "campaign_name"),
        Index("idx_campaign_enrollments_org_campaign", "organization_id", "campaign_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    intake_link_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("intake_links.id", ondelete="SET NULL"), nullable=True
    )

    campaign_name: Mapped[str] = mapped_column(String(100), nullable=False)
    current_stage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0..3
    status: Mapped[str] = mapped_column(
        String(20), default=EnrollmentStatus.ACTIVE.value, nullable=False
    )  # active | completed | paused | unsubscribed

    next_email_due_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_email_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    unsubscribed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    client: Mapped["Client"] = relationship(back_populates="enrollments")
    intake_link: Mapped["IntakeLink | None"] = relationship()
