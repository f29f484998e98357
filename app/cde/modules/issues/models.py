from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.cde.models import Base
from app.cde.utils import utcnow


class Issue(Base):
    """Field / non-conformance issue. Never deleted; it is a compliance record."""

    __tablename__ = "issues"
    __table_args__ = (
        UniqueConstraint("tenant_id", "issue_number", name="uq_issues_tenant_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)

    issue_number: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. "FD-DEF-001"
    issue_type: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")

    # OPEN -> WORK_DONE -> INSPECT -> CLOSED (see app.cde.transitions.ISSUE_TABLE)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")

    raised_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    raised_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
