from __future__ import annotations

import csv
import io
import logging
from typing import Any

from flask import g, has_app_context
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.cde.constants import AUDIT_EVENTS
from app.cde.models import AuditEvent
from app.cde.principal import Principal
from app.cde.utils import clamp_page, normalize_text, total_pages, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 100
MAX_PAGE_LIMIT = 500
EXPORT_MAX_ROWS = 5000

EXPORT_HEADERS = ("Timestamp", "Event Type", "Entity Type", "Entity Ref", "User", "Detail")


def record_event(
    s: Session,
    *,
    actor: Principal | None,
    tenant_id: int | None = None,
    event_type: str,
    entity_type: str,
    entity_id: object | None = None,
    entity_ref: str | None = None,
    detail: str | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper.

    Flushes immediately so a failed ledger write fails the surrounding
    operation instead of surfacing later at commit.
    """
    if tenant_id is None:
        if actor is None:
            raise ValueError("record_event needs an actor or an explicit tenant_id")
        tenant_id = actor.tenant_id
    rid = request_id or (getattr(g, "request_id", None) if has_app_context() else None)
    ev = AuditEvent(
        tenant_id=tenant_id,
        request_id=rid,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_ref=entity_ref,
        user_id=actor.user_id if actor else None,
        user_name=actor.user_name if actor else None,
        detail=detail,
        created_at=utcnow(),
    )
    s.add(ev)
    s.flush()
    return ev


def event_to_dict(ev: AuditEvent) -> dict[str, Any]:
    return {
        "id": ev.id,
        "event_type": ev.event_type,
        "entity_type": ev.entity_type,
        "entity_id": ev.entity_id,
        "entity_ref": ev.entity_ref,
        "user_id": ev.user_id,
        "user_name": ev.user_name,
        "detail": ev.detail,
        "created_at": ev.created_at.isoformat() if ev.created_at else None,
    }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _filtered(
    tenant_id: int,
    *,
    entity_type: str | None,
    entity_id: str | None,
    event_type: str | None,
    search: str | None,
):
    stmt = select(AuditEvent).where(AuditEvent.tenant_id == tenant_id)
    if normalize_text(entity_type):
        stmt = stmt.where(AuditEvent.entity_type == normalize_text(entity_type))
    if normalize_text(entity_id):
        stmt = stmt.where(AuditEvent.entity_id == normalize_text(entity_id))
    if normalize_text(event_type):
        stmt = stmt.where(AuditEvent.event_type == normalize_text(event_type))
    term = normalize_text(search)
    if term:
        pattern = f"%{_escape_like(term)}%"
        stmt = stmt.where(
            or_(
                AuditEvent.entity_ref.ilike(pattern, escape="\\"),
                AuditEvent.detail.ilike(pattern, escape="\\"),
                AuditEvent.user_name.ilike(pattern, escape="\\"),
            )
        )
    return stmt


def _newest_first(stmt):
    return stmt.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())


def query_events(
    s: Session,
    actor: Principal,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    event_type: str | None = None,
    search: str | None = None,
    page: object = 1,
    limit: object = DEFAULT_PAGE_LIMIT,
    max_limit: int = MAX_PAGE_LIMIT,
) -> dict[str, Any]:
    """Paginated, filtered, newest-first view of the tenant's ledger. Pure read."""
    page_n, limit_n = clamp_page(page, limit, default_limit=DEFAULT_PAGE_LIMIT, max_limit=max_limit)
    stmt = _filtered(
        actor.tenant_id,
        entity_type=entity_type,
        entity_id=entity_id,
        event_type=event_type,
        search=search,
    )
    total = s.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = (
        s.execute(_newest_first(stmt).offset((page_n - 1) * limit_n).limit(limit_n))
        .scalars()
        .all()
    )
    return {
        "events": [event_to_dict(ev) for ev in rows],
        "total": total,
        "page": page_n,
        "totalPages": total_pages(total, limit_n),
    }


def export_events(
    s: Session,
    actor: Principal,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    event_type: str | None = None,
    search: str | None = None,
    max_rows: int = EXPORT_MAX_ROWS,
) -> list[dict[str, str]]:
    """
    Materialize the filtered ledger as flat rows (see EXPORT_HEADERS).

    Exporting is itself a sensitive action: one EXPORT event is appended,
    after the rows are read, recording how many rows left the system.
    """
    stmt = _filtered(
        actor.tenant_id,
        entity_type=entity_type,
        entity_id=entity_id,
        event_type=event_type,
        search=search,
    )
    events = s.execute(_newest_first(stmt).limit(max_rows)).scalars().all()
    rows = [
        {
            "Timestamp": ev.created_at.isoformat() if ev.created_at else "",
            "Event Type": ev.event_type,
            "Entity Type": ev.entity_type,
            "Entity Ref": ev.entity_ref or "",
            "User": ev.user_name or ev.user_id or "System",
            "Detail": ev.detail or "",
        }
        for ev in events
    ]

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.EXPORT,
        entity_type="audit",
        detail=f"Exported {len(rows)} audit events",
    )
    logger.info("Audit export tenant=%s user=%s rows=%d", actor.tenant_id, actor.user_id, len(rows))
    return rows


def render_csv(rows: list[dict[str, str]]) -> str:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=list(EXPORT_HEADERS), quoting=csv.QUOTE_ALL)
    w.writeheader()
    for r in rows:
        w.writerow(r)
    return buf.getvalue()
