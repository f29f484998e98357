from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.cde.errors import ImmutableRecord
from app.cde.utils import utcnow


class Base(DeclarativeBase):
    pass


class Tenant(Base):
    """Organization; every lifecycle row belongs to exactly one."""

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Rows are written in the same transaction as the change they describe and are
    never updated or deleted (see the mapper guards below).
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_tenant_created", "tenant_id", "created_at"),
        Index("idx_audit_tenant_entity", "tenant_id", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "ISSUE_STATUS"
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)  # e.g. "issue"
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)  # string for flexibility
    entity_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)  # human label, e.g. "RFI-001"

    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_name: Mapped[str | None] = mapped_column(String(320), nullable=True)

    detail: Mapped[str | None] = mapped_column(Text, nullable=True)


@event.listens_for(AuditEvent, "before_update")
def _refuse_audit_update(mapper, connection, target) -> None:
    raise ImmutableRecord(f"Audit event {target.id} is append-only and cannot be updated")


@event.listens_for(AuditEvent, "before_delete")
def _refuse_audit_delete(mapper, connection, target) -> None:
    raise ImmutableRecord(f"Audit event {target.id} is append-only and cannot be deleted")


class SequenceCounter(Base):
    """
    Persisted per-tenant, per-scope counter (mail numbers, issue numbers).
    Values only move forward, so a number is never handed out twice.
    """

    __tablename__ = "sequence_counters"

    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True)
    scope: Mapped[str] = mapped_column(String(32), primary_key=True)  # e.g. "mail"
    key: Mapped[str] = mapped_column(String(32), primary_key=True)  # e.g. "RFI"
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.cde.modules.documents.models import Document, DocumentVersion  # noqa: E402,F401
from app.cde.modules.issues.models import Issue  # noqa: E402,F401
from app.cde.modules.mail.models import MailItem, MailResponse  # noqa: E402,F401
from app.cde.modules.residents.models import Resident  # noqa: E402,F401
from app.cde.modules.workflows.models import Workflow, WorkflowStep  # noqa: E402,F401
