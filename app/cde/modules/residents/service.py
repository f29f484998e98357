"""
Resident records and the token-gated resident portal.

A portal link carries a random bearer token. The database keeps only its
SHA-256 digest plus an expiry; issuing a new token overwrites the old one, so
at most one link per resident is live at any time.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.cde.audit import record_event
from app.cde.constants import AUDIT_EVENTS, ENTITY_RESIDENT
from app.cde.errors import NotFound, TokenInvalid, ValidationError
from app.cde.principal import Principal
from app.cde.utils import normalize_text, resolve_now

from .models import Resident

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_DAYS = 90
TOKEN_BYTES = 32


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def portal_url(base_url: str, token: str) -> str:
    return f"{(base_url or '').rstrip('/')}/portal/{token}"


def get_resident(s: Session, actor: Principal, resident_id: int, *, for_update: bool = False) -> Resident:
    stmt = select(Resident).where(Resident.id == resident_id).where(Resident.tenant_id == actor.tenant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    r = s.execute(stmt).scalar_one_or_none()
    if r is None:
        raise NotFound("Resident", resident_id)
    return r


def create_resident(
    s: Session,
    actor: Principal,
    *,
    first_name: str,
    last_name: str,
    building: str | None = None,
    flat_ref: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    now: datetime | None = None,
) -> Resident:
    first_name = normalize_text(first_name)
    last_name = normalize_text(last_name)
    if not first_name or not last_name:
        raise ValidationError("first_name and last_name are required.")
    email = normalize_text(email).lower() or None
    if email and "@" not in email:
        raise ValidationError("email is not a valid address.")

    r = Resident(
        tenant_id=actor.tenant_id,
        first_name=first_name,
        last_name=last_name,
        building=normalize_text(building) or None,
        flat_ref=normalize_text(flat_ref) or None,
        email=email,
        phone=normalize_text(phone) or None,
        created_at=resolve_now(now),
    )
    s.add(r)
    s.flush()

    ref = r.display_name
    if r.flat_ref:
        ref = f"{ref} ({r.flat_ref})"
    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.RESIDENT_CREATED,
        entity_type=ENTITY_RESIDENT,
        entity_id=r.id,
        entity_ref=ref,
        detail=f"Resident created: {ref}",
    )
    return r


def issue_token(
    s: Session,
    actor: Principal,
    resident_id: int,
    *,
    ttl_days: int = DEFAULT_TOKEN_TTL_DAYS,
    now: datetime | None = None,
) -> str:
    """
    Generate a fresh portal token for a resident and return it in the clear.
    The previous token, if any, stops working immediately.
    """
    if ttl_days <= 0:
        raise ValidationError("ttl_days must be positive.")
    r = get_resident(s, actor, resident_id, for_update=True)
    token = secrets.token_urlsafe(TOKEN_BYTES)
    r.portal_token_hash = hash_token(token)
    now = resolve_now(now)
    r.portal_token_expires_at = now + timedelta(days=ttl_days)
    s.flush()
    logger.info("Portal token issued resident=%s expires=%s", r.id, r.portal_token_expires_at.isoformat())
    return token


def validate_token(s: Session, token: str, *, now: datetime | None = None) -> Resident:
    """
    Resolve a portal token to its resident.

    Unknown, revoked and expired tokens all raise the same TokenInvalid so a
    caller cannot tell them apart. A successful check touches last_active_at.
    """
    token = (token or "").strip()
    if not token:
        raise TokenInvalid()
    digest = hash_token(token)
    r = s.execute(select(Resident).where(Resident.portal_token_hash == digest)).scalar_one_or_none()
    if r is None or not hmac.compare_digest(r.portal_token_hash or "", digest):
        raise TokenInvalid()

    now = resolve_now(now)
    if r.portal_token_expires_at is None or r.portal_token_expires_at < now:
        raise TokenInvalid()

    r.last_active_at = now
    s.flush()
    return r


def revoke_token(s: Session, actor: Principal, resident_id: int) -> Resident:
    r = get_resident(s, actor, resident_id, for_update=True)
    r.portal_token_hash = None
    r.portal_token_expires_at = None
    s.flush()
    logger.info("Portal token revoked resident=%s", r.id)
    return r


def portal_view(r: Resident) -> dict:
    """Read-only payload shown to a resident; no internal identifiers beyond their own record."""
    return {
        "firstName": r.first_name,
        "lastName": r.last_name,
        "building": r.building,
        "flatRef": r.flat_ref,
        "lastActiveAt": r.last_active_at.isoformat() if r.last_active_at else None,
    }
