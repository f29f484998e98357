from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import abort, current_app, g, request


@dataclass(frozen=True)
class Principal:
    """
    Already-authenticated caller. Authentication happens upstream; the engine
    only trusts what the serving layer hands it.
    """

    user_id: str
    tenant_id: int
    user_name: str | None = None
    is_admin: bool = False


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


def load_principal() -> None:
    """
    Loads g.principal from the identity headers set by the authenticating proxy.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    g.principal = None

    tenant_raw = (request.headers.get("X-Tenant-Id") or "").strip()
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not tenant_raw or not user_id:
        return

    try:
        tenant_id = int(tenant_raw)
    except ValueError:
        current_app.logger.warning("Ignoring malformed X-Tenant-Id=%r request_id=%s", tenant_raw, g.request_id)
        return

    g.principal = Principal(
        user_id=user_id,
        tenant_id=tenant_id,
        user_name=(request.headers.get("X-User-Name") or "").strip() or None,
        is_admin=_truthy(request.headers.get("X-User-Admin")),
    )


def current_principal() -> Principal:
    p = getattr(g, "principal", None)
    if not p:
        raise RuntimeError("No current principal")
    return p


def require_principal(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if getattr(g, "principal", None) is None:
            abort(401)
        return fn(*args, **kwargs)

    return wrapped
