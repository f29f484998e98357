"""
Correspondence (RFI / SI / QRY) lifecycle.

Responding is the only way into RESPONDED; closing is one-way. There is no
reopen: if one is ever needed it must be added as its own audited transition.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.cde import transitions
from app.cde.audit import record_event
from app.cde.constants import AUDIT_EVENTS, DEFAULT_PRIORITY, ENTITY_MAIL, MAIL_TYPES, PRIORITIES
from app.cde.errors import NotFound, ValidationError
from app.cde.principal import Principal
from app.cde.sequences import next_value
from app.cde.utils import normalize_text, resolve_now

from .models import MailItem, MailResponse
from .sla import default_due_days, mail_number

logger = logging.getLogger(__name__)

SEQUENCE_SCOPE = "mail"


def get_mail(s: Session, actor: Principal, mail_id: int, *, for_update: bool = False) -> MailItem:
    stmt = select(MailItem).where(MailItem.id == mail_id).where(MailItem.tenant_id == actor.tenant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    mail = s.execute(stmt).scalar_one_or_none()
    if mail is None:
        raise NotFound("Mail", mail_id)
    return mail


def create_mail(
    s: Session,
    actor: Principal,
    *,
    mail_type: str,
    subject: str,
    body: str | None = None,
    to_user_id: str | None = None,
    priority: str | None = None,
    due_days: int | None = None,
    now: datetime | None = None,
) -> MailItem:
    """Open a new correspondence item with the next per-tenant number for its type."""
    mail_type = normalize_text(mail_type).upper()
    if mail_type not in MAIL_TYPES:
        raise ValidationError(f"mail_type must be one of: {', '.join(MAIL_TYPES)}")
    subject = normalize_text(subject)
    if not subject:
        raise ValidationError("subject is required.")
    priority = normalize_text(priority).upper() or DEFAULT_PRIORITY
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")
    if due_days is None:
        due_days = default_due_days(mail_type)
    if due_days < 0:
        raise ValidationError("due_days must not be negative.")

    seq = next_value(s, tenant_id=actor.tenant_id, scope=SEQUENCE_SCOPE, key=mail_type)
    now = resolve_now(now)
    mail = MailItem(
        tenant_id=actor.tenant_id,
        mail_number=mail_number(mail_type, seq),
        mail_type=mail_type,
        subject=subject,
        body=normalize_text(body) or None,
        priority=priority,
        status="OPEN",
        from_user_id=actor.user_id,
        to_user_id=normalize_text(to_user_id) or None,
        sent_at=now,
        due_date=now + timedelta(days=due_days),
    )
    s.add(mail)
    s.flush()

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.MAIL_CREATED,
        entity_type=ENTITY_MAIL,
        entity_id=mail.id,
        entity_ref=mail.mail_number,
        detail=f"Created {mail_type}: {subject}",
    )
    logger.info("Mail created tenant=%s number=%s", actor.tenant_id, mail.mail_number)
    return mail


def add_response(
    s: Session,
    actor: Principal,
    mail_id: int,
    *,
    response_body: str,
    now: datetime | None = None,
) -> MailItem:
    response_body = normalize_text(response_body)
    if not response_body:
        raise ValidationError("response_body is required.")
    mail = get_mail(s, actor, mail_id, for_update=True)
    now = resolve_now(now)

    # Raises EntityClosed for a closed item before anything is written.
    t = transitions.apply_transition(transitions.MAIL, mail, "RESPONDED", now=now)

    s.add(MailResponse(mail_id=mail.id, response_body=response_body, from_user_id=actor.user_id, created_at=now))
    s.flush()

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.MAIL_RESPONDED,
        entity_type=ENTITY_MAIL,
        entity_id=mail.id,
        entity_ref=mail.mail_number,
        detail=t.detail,
    )
    return mail


def close_mail(s: Session, actor: Principal, mail_id: int, *, now: datetime | None = None) -> MailItem:
    mail = get_mail(s, actor, mail_id, for_update=True)
    t = transitions.apply_transition(transitions.MAIL, mail, "CLOSED", now=now)
    s.flush()

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.MAIL_CLOSED,
        entity_type=ENTITY_MAIL,
        entity_id=mail.id,
        entity_ref=mail.mail_number,
        detail=t.detail,
    )
    return mail


def list_responses(s: Session, actor: Principal, mail_id: int) -> list[MailResponse]:
    get_mail(s, actor, mail_id)
    return list(
        s.execute(select(MailResponse).where(MailResponse.mail_id == mail_id).order_by(MailResponse.id.asc()))
        .scalars()
        .all()
    )
