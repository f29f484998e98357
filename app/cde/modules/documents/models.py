from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.cde.models import Base
from app.cde.utils import utcnow


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("tenant_id", "doc_number", name="uq_documents_tenant_doc_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)

    doc_number: Mapped[str] = mapped_column(String(64), nullable=False)  # ISO 19650, e.g. PRJ001-HF-FD-ZZ-FRA-S-0001
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    doc_type: Mapped[str] = mapped_column(String(16), nullable=False, default="GEN")

    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 1=A, 2=B, ...
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # latest version_number

    # Denormalized copy of the latest DocumentVersion
    file_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    author_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ISO 19650 suitability code: S0 (WIP) -> S1/S3/S4 -> A/B -> C/CR
    status: Mapped[str] = mapped_column(String(8), nullable=False, default="S0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    versions: Mapped[list["DocumentVersion"]] = relationship(
        "DocumentVersion",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="DocumentVersion.version_number.desc()",
    )


class DocumentVersion(Base):
    """Frozen snapshot of a document's content; never updated once written."""

    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_version_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)

    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    author_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    document: Mapped[Document] = relationship("Document", back_populates="versions", lazy="selectin")
