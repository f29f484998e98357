from __future__ import annotations

from flask import Blueprint, Response, current_app, jsonify, request

from app.cde.audit import export_events, query_events, render_csv
from app.cde.db import db_session
from app.cde.operations import run_operation
from app.cde.principal import current_principal, require_principal
from app.cde.responses import error_response, outcome_response

bp = Blueprint("cde_audit", __name__)


def _filters() -> dict[str, str | None]:
    return {
        "entity_type": request.args.get("entity_type"),
        "entity_id": request.args.get("entity_id"),
        "event_type": request.args.get("event_type"),
        "search": request.args.get("search"),
    }


@bp.get("/audit")
@require_principal
def audit_list():
    outcome = run_operation(
        db_session(),
        query_events,
        current_principal(),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 100),
        max_limit=current_app.config["AUDIT_PAGE_LIMIT_MAX"],
        **_filters(),
    )
    return outcome_response(outcome)


@bp.get("/audit/export")
@require_principal
def audit_export():
    outcome = run_operation(
        db_session(),
        export_events,
        current_principal(),
        max_rows=current_app.config["AUDIT_EXPORT_MAX_ROWS"],
        **_filters(),
    )
    if not outcome.ok:
        return error_response(outcome.error)
    if (request.args.get("format") or "").lower() == "json":
        return jsonify({"rows": outcome.value, "count": len(outcome.value)})
    return Response(
        render_csv(outcome.value),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=audit_export.csv"},
    )
