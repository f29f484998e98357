from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.cde.models import Base
from app.cde.utils import utcnow


class MailItem(Base):
    __tablename__ = "mail_items"
    __table_args__ = (
        UniqueConstraint("tenant_id", "mail_number", name="uq_mail_items_tenant_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)

    mail_number: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. "RFI-001"
    mail_type: Mapped[str] = mapped_column(String(8), nullable=False)  # RFI | SI | QRY
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")

    # OPEN -> RESPONDED -> CLOSED; OVERDUE is derived, never written
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")

    from_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    responses: Mapped[list["MailResponse"]] = relationship(
        "MailResponse",
        back_populates="mail",
        cascade="all, delete-orphan",
        lazy="select",
        order_by="MailResponse.id",
    )


class MailResponse(Base):
    """Append-only reply to a mail item."""

    __tablename__ = "mail_responses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    mail_id: Mapped[int] = mapped_column(ForeignKey("mail_items.id", ondelete="CASCADE"), nullable=False, index=True)

    response_body: Mapped[str] = mapped_column(Text, nullable=False)
    from_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    mail: Mapped[MailItem] = relationship("MailItem", back_populates="responses", lazy="selectin")
