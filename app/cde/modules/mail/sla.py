"""
Correspondence SLA helpers. Pure functions; overdue-ness is always derived
from due_date and the clock, never stored.
"""
from __future__ import annotations

import math
from datetime import datetime

from app.cde.sequences import format_number
from app.cde.utils import as_naive_utc, resolve_now

CLOSED = "CLOSED"
OVERDUE = "OVERDUE"

DEFAULT_DUE_DAYS = {"RFI": 10, "SI": 5, "QRY": 7}
FALLBACK_DUE_DAYS = 7

_SECONDS_PER_DAY = 24 * 60 * 60


def is_overdue(due_date: datetime | None, status: str, now: datetime | None = None) -> bool:
    if due_date is None or status == CLOSED:
        return False
    return as_naive_utc(due_date) < resolve_now(now)


def days_until_due(due_date: datetime | None, now: datetime | None = None) -> int | None:
    """Whole days until due, rounded up; negative means overdue by that many days."""
    if due_date is None:
        return None
    delta = as_naive_utc(due_date) - resolve_now(now)
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)


def format_due_label(due_date: datetime | None, status: str, now: datetime | None = None) -> str:
    if due_date is None:
        return "No due date"
    if status == CLOSED:
        return "Closed"
    days = days_until_due(due_date, now)
    if days < 0:
        return f"{abs(days)}d overdue"
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    return f"{days}d remaining"


def default_due_days(mail_type: str) -> int:
    return DEFAULT_DUE_DAYS.get((mail_type or "").strip().upper(), FALLBACK_DUE_DAYS)


def mail_number(mail_type: str, sequence: int) -> str:
    """RFI + 1 -> "RFI-001"."""
    return format_number(mail_type.strip().upper(), sequence)


def effective_status(mail, now: datetime | None = None) -> str:
    """Stored status, or OVERDUE for an unanswered-in-time item that is not closed."""
    if mail.status != CLOSED and is_overdue(mail.due_date, mail.status, now):
        return OVERDUE
    return mail.status
