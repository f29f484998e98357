from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.cde import transitions
from app.cde.audit import record_event
from app.cde.constants import AUDIT_EVENTS, DEFAULT_PRIORITY, ENTITY_ISSUE, ISSUE_TYPES, PRIORITIES
from app.cde.errors import NotFound, ValidationError
from app.cde.principal import Principal
from app.cde.sequences import format_number, next_value
from app.cde.utils import normalize_text, resolve_now

from .models import Issue

logger = logging.getLogger(__name__)

SEQUENCE_SCOPE = "issue"


def get_issue(s: Session, actor: Principal, issue_id: int, *, for_update: bool = False) -> Issue:
    stmt = select(Issue).where(Issue.id == issue_id).where(Issue.tenant_id == actor.tenant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    issue = s.execute(stmt).scalar_one_or_none()
    if issue is None:
        raise NotFound("Issue", issue_id)
    return issue


def raise_issue(
    s: Session,
    actor: Principal,
    *,
    issue_type: str,
    title: str,
    description: str | None = None,
    priority: str | None = None,
    now: datetime | None = None,
) -> Issue:
    """Raise a new issue in OPEN with the next per-tenant number for its type."""
    issue_type = normalize_text(issue_type).upper()
    if issue_type not in ISSUE_TYPES:
        raise ValidationError(f"Invalid issue_type. Must be one of: {', '.join(ISSUE_TYPES)}")
    title = normalize_text(title)
    if not title:
        raise ValidationError("title is required.")
    priority = normalize_text(priority).upper() or DEFAULT_PRIORITY
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")

    seq = next_value(s, tenant_id=actor.tenant_id, scope=SEQUENCE_SCOPE, key=issue_type)
    issue = Issue(
        tenant_id=actor.tenant_id,
        issue_number=format_number(issue_type, seq),
        issue_type=issue_type,
        title=title,
        description=normalize_text(description) or None,
        priority=priority,
        status="OPEN",
        raised_by=actor.user_id,
        raised_at=resolve_now(now),
    )
    s.add(issue)
    s.flush()

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.ISSUE_RAISED,
        entity_type=ENTITY_ISSUE,
        entity_id=issue.id,
        entity_ref=issue.issue_number,
        detail=f"Raised {issue_type}: {title}",
    )
    logger.info("Issue raised tenant=%s number=%s", actor.tenant_id, issue.issue_number)
    return issue


def transition_issue(
    s: Session,
    actor: Principal,
    issue_id: int,
    to_status: str,
    *,
    now: datetime | None = None,
) -> Issue:
    to_status = normalize_text(to_status).upper()
    issue = get_issue(s, actor, issue_id, for_update=True)
    t = transitions.apply_transition(transitions.ISSUE, issue, to_status, now=now)
    s.flush()

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.ISSUE_STATUS,
        entity_type=ENTITY_ISSUE,
        entity_id=issue.id,
        entity_ref=issue.issue_number,
        detail=t.detail,
    )
    return issue
