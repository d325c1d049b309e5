"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxdesk.db.base import Base
from taxdesk.utils.datetime_utils import utcnow

if TYPE_CHECKING:
    from taxdesk.db.models import (
        CampaignEnrollment,
        Document,
        DocumentRequest,
        IntakeLink,
        Organization,
        Task,
    )


class Client(Base):
    """
    A tax client.

    Deleting a client cascades to its documents, document requests,
    intake links and campaign enrollments.
    """

    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_clients_org", "organization_id"),
        Index("idx_clients_org_email", "organization_id", "email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    organization: Mapped["Organization"] = relationship()
    documents: Mapped[list["Document"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )
    document_requests: Mapped[list["DocumentRequest"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )
    intake_links: Mapped[list["IntakeLink"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )
    enrollments: Mapped[list["CampaignEnrollment"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )
    tasks: Mapped[list["Task"]] = relationship(
        back_populates="client", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
