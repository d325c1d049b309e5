"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taxdesk.db.base import Base
from taxdesk.db.enums import (
    DocumentCategory,
    DocumentRequestItemStatus,
    DocumentRequestStatus,
)
from taxdesk.utils.datetime_utils import utcnow

if TYPE_CHECKING:
    from taxdesk.db.models import Client, Task, User


class Document(Base):
    """
    A stored client file.

    ``storage_path`` points into the object store; deleting a document
    removes both the object and this row.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_client", "client_id"),
        Index("idx_documents_org_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    uploaded_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )  # NULL for client self-service uploads

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_path: Mapped[str] = mapped_column(String(512), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[str] = mapped_column(
        String(30), default=DocumentCategory.OTHER.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    client: Mapped["Client"] = relationship(back_populates="documents")


class DocumentRequest(Base):
    """
    A named checklist of documents requested from a client.

    Accessed publicly by ``token``. ``status`` is derived from the items and
    recomputed after every item mutation; expiry is applied lazily on read.
    """

    __tablename__ = "document_requests"
    __table_args__ = (
        Index("idx_document_requests_token", "token", unique=True),
        Index("idx_document_requests_client", "client_id"),
        Index("idx_document_requests_org_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    task_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    token: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), default=DocumentRequestStatus.PENDING.value, nullable=False
    )  # pending | partially_uploaded | completed | expired
    expires_at: Mapped[datetime] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    client: Mapped["Client"] = relationship(back_populates="document_requests")
    task: Mapped["Task | None"] = relationship()
    created_by: Mapped["User | None"] = relationship()
    items: Mapped[list["DocumentRequestItem"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="DocumentRequestItem.position",
    )


class DocumentRequestItem(Base):
    """One requested document within a DocumentRequest. ``uploaded`` is terminal."""

    __tablename__ = "document_request_items"
    __table_args__ = (Index("idx_document_request_items_request", "document_request_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_requests.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=DocumentRequestItemStatus.PENDING.value, nullable=False
    )  # pending | uploaded
    uploaded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    document_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )

    # File metadata (copied from the accepted upload)
    file_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    request: Mapped["DocumentRequest"] = relationship(back_populates="items")
    document: Mapped["Document | None"] = relationship()
