from __future__ import annotations

from flask import Blueprint

from app.cde.db import db_session
from app.cde.operations import run_operation
from app.cde.principal import current_principal, require_principal
from app.cde.responses import iso, outcome_response, payload

from . import service
from .models import Issue

bp = Blueprint("cde_issues", __name__)


def issue_to_dict(i: Issue) -> dict:
    return {
        "id": i.id,
        "issueNumber": i.issue_number,
        "issueType": i.issue_type,
        "title": i.title,
        "description": i.description,
        "priority": i.priority,
        "status": i.status,
        "raisedBy": i.raised_by,
        "raisedAt": iso(i.raised_at),
        "closedAt": iso(i.closed_at),
    }


@bp.post("/issues")
@require_principal
def issues_create():
    data = payload()
    outcome = run_operation(
        db_session(),
        service.raise_issue,
        current_principal(),
        issue_type=data.get("issue_type") or "",
        title=data.get("title") or "",
        description=data.get("description"),
        priority=data.get("priority"),
    )
    return outcome_response(outcome, issue_to_dict, status=201)


@bp.get("/issues/<int:issue_id>")
@require_principal
def issues_detail(issue_id: int):
    outcome = run_operation(db_session(), service.get_issue, current_principal(), issue_id)
    return outcome_response(outcome, issue_to_dict)


@bp.post("/issues/<int:issue_id>/status")
@require_principal
def issues_status(issue_id: int):
    outcome = run_operation(
        db_session(),
        service.transition_issue,
        current_principal(),
        issue_id,
        payload().get("status") or "",
    )
    return outcome_response(outcome, issue_to_dict)
