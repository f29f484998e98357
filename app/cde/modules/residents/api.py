from __future__ import annotations

from flask import Blueprint, current_app, request

from app.cde.db import db_session
from app.cde.operations import run_operation
from app.cde.principal import current_principal, require_principal
from app.cde.responses import iso, outcome_response, payload

from . import service
from .models import Resident

bp = Blueprint("cde_residents", __name__)


def resident_to_dict(r: Resident) -> dict:
    return {
        "id": r.id,
        "firstName": r.first_name,
        "lastName": r.last_name,
        "building": r.building,
        "flatRef": r.flat_ref,
        "email": r.email,
        "phone": r.phone,
        "portalActive": r.portal_token_hash is not None,
        "portalExpiresAt": iso(r.portal_token_expires_at),
        "lastActiveAt": iso(r.last_active_at),
    }


@bp.post("/residents")
@require_principal
def residents_create():
    data = payload()
    outcome = run_operation(
        db_session(),
        service.create_resident,
        current_principal(),
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
        building=data.get("building"),
        flat_ref=data.get("flat_ref"),
        email=data.get("email"),
        phone=data.get("phone"),
    )
    return outcome_response(outcome, resident_to_dict, status=201)


@bp.post("/residents/<int:resident_id>/portal-token")
@require_principal
def residents_issue_token(resident_id: int):
    outcome = run_operation(
        db_session(),
        service.issue_token,
        current_principal(),
        resident_id,
        ttl_days=current_app.config["PORTAL_TOKEN_TTL_DAYS"],
    )
    return outcome_response(
        outcome,
        lambda token: {"token": token, "portalUrl": service.portal_url(request.host_url, token)},
        status=201,
    )


@bp.delete("/residents/<int:resident_id>/portal-token")
@require_principal
def residents_revoke_token(resident_id: int):
    outcome = run_operation(db_session(), service.revoke_token, current_principal(), resident_id)
    return outcome_response(outcome, resident_to_dict)


@bp.get("/portal/<token>")
def portal_validate(token: str):
    """Token-gated resident view. The only endpoint that needs no principal."""
    outcome = run_operation(db_session(), service.validate_token, token)
    return outcome_response(outcome, service.portal_view)
