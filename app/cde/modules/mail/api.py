from __future__ import annotations

from flask import Blueprint

from app.cde.db import db_session
from app.cde.operations import run_operation
from app.cde.principal import current_principal, require_principal
from app.cde.responses import iso, optional_int, outcome_response, payload
from app.cde.utils import utcnow

from . import service
from .models import MailItem, MailResponse
from .sla import days_until_due, effective_status, format_due_label

bp = Blueprint("cde_mail", __name__)


def mail_to_dict(m: MailItem) -> dict:
    now = utcnow()
    return {
        "id": m.id,
        "mailNumber": m.mail_number,
        "mailType": m.mail_type,
        "subject": m.subject,
        "body": m.body,
        "priority": m.priority,
        "status": effective_status(m, now),
        "storedStatus": m.status,
        "fromUserId": m.from_user_id,
        "toUserId": m.to_user_id,
        "sentAt": iso(m.sent_at),
        "dueDate": iso(m.due_date),
        "daysUntilDue": days_until_due(m.due_date, now),
        "dueLabel": format_due_label(m.due_date, m.status, now),
        "closedAt": iso(m.closed_at),
    }


def response_to_dict(r: MailResponse) -> dict:
    return {
        "id": r.id,
        "responseBody": r.response_body,
        "fromUserId": r.from_user_id,
        "createdAt": iso(r.created_at),
    }


@bp.post("/mail")
@require_principal
def mail_create():
    data = payload()
    outcome = run_operation(
        db_session(),
        service.create_mail,
        current_principal(),
        mail_type=data.get("mail_type") or "",
        subject=data.get("subject") or "",
        body=data.get("body"),
        to_user_id=data.get("to_user_id"),
        priority=data.get("priority"),
        due_days=optional_int(data, "due_days"),
    )
    return outcome_response(outcome, mail_to_dict, status=201)


@bp.get("/mail/<int:mail_id>")
@require_principal
def mail_detail(mail_id: int):
    outcome = run_operation(db_session(), service.get_mail, current_principal(), mail_id)
    return outcome_response(outcome, mail_to_dict)


@bp.get("/mail/<int:mail_id>/responses")
@require_principal
def mail_responses(mail_id: int):
    outcome = run_operation(db_session(), service.list_responses, current_principal(), mail_id)
    return outcome_response(outcome, lambda rows: {"responses": [response_to_dict(r) for r in rows]})


@bp.post("/mail/<int:mail_id>/responses")
@require_principal
def mail_respond(mail_id: int):
    outcome = run_operation(
        db_session(),
        service.add_response,
        current_principal(),
        mail_id,
        response_body=payload().get("response_body") or "",
    )
    return outcome_response(outcome, mail_to_dict, status=201)


@bp.post("/mail/<int:mail_id>/close")
@require_principal
def mail_close(mail_id: int):
    outcome = run_operation(db_session(), service.close_mail, current_principal(), mail_id)
    return outcome_response(outcome, mail_to_dict)
