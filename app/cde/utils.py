from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns are stored without tz."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_now(now: datetime | None = None) -> datetime:
    """Caller-supplied clock (aware or naive) as naive UTC; the real clock when omitted."""
    return as_naive_utc(now) if now is not None else utcnow()


def normalize_text(value: str | None) -> str:
    return (value or "").strip()


def clamp_page(raw_page, raw_limit, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    """Coerce page/limit query values; bad input falls back to defaults."""
    try:
        page = int(raw_page)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(raw_limit)
    except (TypeError, ValueError):
        limit = default_limit
    if page < 1:
        page = 1
    if limit < 1:
        limit = default_limit
    return page, min(limit, max_limit)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
