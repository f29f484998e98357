"""
Per-entity-kind status machines.

Each table lists the statuses a kind may hold and, for each, the statuses it
may move to. A status with no outgoing moves is terminal: any attempt to
leave it is `EntityClosed` rather than `InvalidTransition`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

from app.cde.errors import EntityClosed, InvalidStatus, InvalidTransition, ValidationError
from app.cde.utils import resolve_now

ISSUE = "issue"
MAIL = "mail"
DOCUMENT = "document"


@dataclass(frozen=True)
class TransitionTable:
    kind: str
    statuses: tuple[str, ...]
    allowed: MappingProxyType
    # stored legacy values that behave like another status
    aliases: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    stamp_closed_on: frozenset[str] = frozenset()
    clear_closed_on: frozenset[str] = frozenset()

    def targets(self, from_status: str) -> frozenset[str]:
        return self.allowed.get(self.aliases.get(from_status, from_status), frozenset())

    def is_terminal(self, status: str) -> bool:
        status = self.aliases.get(status, status)
        return status in self.allowed and not self.allowed[status]


def _table(kind: str, allowed: dict[str, set[str]], **kw: Any) -> TransitionTable:
    return TransitionTable(
        kind=kind,
        statuses=tuple(allowed),
        allowed=MappingProxyType({k: frozenset(v) for k, v in allowed.items()}),
        **kw,
    )


ISSUE_TABLE = _table(
    ISSUE,
    {
        "OPEN": {"WORK_DONE", "CLOSED"},
        "WORK_DONE": {"INSPECT", "OPEN"},
        "INSPECT": {"CLOSED", "OPEN"},
        "CLOSED": {"OPEN"},
    },
    stamp_closed_on=frozenset({"CLOSED"}),
    clear_closed_on=frozenset({"OPEN"}),
)

# RESPONDED is only entered through add_response. OVERDUE is a derived display
# status; rows that carry it from older imports are treated as OPEN.
MAIL_TABLE = _table(
    MAIL,
    {
        "OPEN": {"RESPONDED", "CLOSED"},
        "RESPONDED": {"RESPONDED", "CLOSED"},
        "CLOSED": set(),
    },
    aliases=MappingProxyType({"OVERDUE": "OPEN"}),
    stamp_closed_on=frozenset({"CLOSED"}),
)

# ISO 19650 suitability codes
DOCUMENT_TABLE = _table(
    DOCUMENT,
    {
        "S0": {"S1", "S3", "S4", "CR"},
        "S1": {"S0", "S3", "S4", "A", "CR"},
        "S3": {"S0", "S1", "S4", "A", "CR"},
        "S4": {"S0", "S1", "S3", "A", "B", "CR"},
        "A": {"B", "C", "CR"},
        "B": {"A", "C", "CR"},
        "C": {"CR"},
        "CR": {"S0"},
    },
)

TABLES = MappingProxyType({t.kind: t for t in (ISSUE_TABLE, MAIL_TABLE, DOCUMENT_TABLE)})


@dataclass(frozen=True)
class Transition:
    kind: str
    old: str
    new: str

    @property
    def detail(self) -> str:
        return f"{self.old} → {self.new}"


def table_for(kind: str) -> TransitionTable:
    try:
        return TABLES[kind]
    except KeyError:
        raise ValidationError(f"Unknown entity kind {kind!r}") from None


def can_transition(kind: str, from_status: str, to_status: str) -> bool:
    table = table_for(kind)
    if to_status not in table.statuses:
        return False
    return to_status in table.targets(from_status)


def check_transition(kind: str, from_status: str, to_status: str) -> None:
    """Raise the precise error for a rejected move; return None when it is legal."""
    table = table_for(kind)
    if not to_status or to_status not in table.statuses:
        raise InvalidStatus(kind, to_status, table.statuses)
    if table.is_terminal(from_status):
        raise EntityClosed(f"{kind.capitalize()} is {from_status}; no further changes are allowed")
    targets = table.targets(from_status)
    if to_status not in targets:
        raise InvalidTransition(from_status, to_status, sorted(targets))


def apply_transition(kind: str, entity: Any, to_status: str, *, now: datetime | None = None) -> Transition:
    """
    Validate and apply a status change to `entity` in memory.

    Side effects bound to the move (closed_at stamping) are applied here; the
    caller persists the entity and writes the audit event in the same
    transaction.
    """
    from_status = entity.status
    check_transition(kind, from_status, to_status)
    table = TABLES[kind]

    entity.status = to_status
    if to_status in table.stamp_closed_on:
        entity.closed_at = resolve_now(now)
    elif to_status in table.clear_closed_on:
        entity.closed_at = None
    return Transition(kind=kind, old=from_status, new=to_status)
