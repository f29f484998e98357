"""
Helpers shared by the JSON blueprints: payload parsing and Outcome -> HTTP.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from flask import current_app, g, jsonify, request

from app.cde.errors import CdeError, ValidationError
from app.cde.operations import OperationError, Outcome

STATUS_BY_KIND = {
    "NotFound": 404,
    "ValidationError": 400,
    "InvalidStatus": 400,
    "InvalidTransition": 409,
    "EntityClosed": 409,
    "StepNotCurrent": 409,
    "WorkflowAlreadyComplete": 409,
    "TokenInvalid": 403,
    "StorageError": 503,
}


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def payload() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def optional_int(data: dict[str, Any], key: str) -> int | None:
    """
    Integer field from a JSON body; absent or empty is None. Anything else
    that is not an integer raises ValidationError (rendered as a 400).
    """
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValidationError(f"{key} must be an integer.")
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and re.fullmatch(r"\s*[+-]?\d+\s*", raw):
        return int(raw)
    raise ValidationError(f"{key} must be an integer.")


def error_response(err: OperationError):
    status = STATUS_BY_KIND.get(err.kind, 500)
    if status >= 500:
        current_app.logger.error("%s: %s request_id=%s", err.kind, err.message, getattr(g, "request_id", None))
    return jsonify({"error": err.to_dict()}), status


def outcome_response(outcome: Outcome, render=None, *, status: int = 200):
    """
    JSON response for an operation outcome. `render` turns the value into a
    JSON-able structure; it runs only on success.
    """
    if not outcome.ok:
        return error_response(outcome.error)
    body = render(outcome.value) if render is not None else outcome.value
    return jsonify(body), status


def bad_request(message: str):
    return error_response(OperationError("ValidationError", message))


def cde_error_response(err: CdeError):
    """Request-parsing errors raised before any service call runs."""
    return error_response(OperationError(err.kind, err.message))
