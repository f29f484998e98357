"""Tests for the status machines and issue lifecycle."""
import threading
from datetime import datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.cde import create_app
from app.cde import transitions
from app.cde.db import session_scope
from app.cde.errors import EntityClosed, InvalidStatus, InvalidTransition, ValidationError
from app.cde.models import AuditEvent, Base, Tenant
from app.cde.modules.issues.models import Issue
from app.cde.modules.issues.service import raise_issue, transition_issue
from app.cde.operations import run_operation
from app.cde.principal import Principal

ISSUE_STATUSES = ("OPEN", "WORK_DONE", "INSPECT", "CLOSED")

# legal path from a fresh OPEN issue to each status
PATH_TO = {
    "OPEN": [],
    "WORK_DONE": ["WORK_DONE"],
    "INSPECT": ["WORK_DONE", "INSPECT"],
    "CLOSED": ["CLOSED"],
}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add(Tenant(slug="acme", name="Acme Build"))
    return app


@pytest.fixture()
def actor(app):
    with session_scope(app) as s:
        tenant_id = s.execute(select(Tenant.id).where(Tenant.slug == "acme")).scalar_one()
    return Principal(user_id="u1", tenant_id=tenant_id, user_name="Alice Surveyor")


def _issue_in(app, actor, status):
    with session_scope(app) as s:
        issue = raise_issue(s, actor, issue_type="FD-DEF", title="Door closer missing")
        for step in PATH_TO[status]:
            transition_issue(s, actor, issue.id, step)
        return issue.id


def _status(app, issue_id):
    with session_scope(app) as s:
        return s.get(Issue, issue_id).status


def test_issue_table_matches_lifecycle():
    t = transitions.ISSUE_TABLE
    assert t.targets("OPEN") == {"WORK_DONE", "CLOSED"}
    assert t.targets("WORK_DONE") == {"INSPECT", "OPEN"}
    assert t.targets("INSPECT") == {"CLOSED", "OPEN"}
    assert t.targets("CLOSED") == {"OPEN"}


def test_can_transition_basic():
    assert transitions.can_transition(transitions.ISSUE, "OPEN", "WORK_DONE")
    assert not transitions.can_transition(transitions.ISSUE, "OPEN", "INSPECT")
    assert not transitions.can_transition(transitions.ISSUE, "OPEN", "NOPE")
    assert transitions.can_transition(transitions.DOCUMENT, "S0", "S3")
    assert not transitions.can_transition(transitions.DOCUMENT, "C", "A")


def test_unknown_kind_is_validation_error():
    with pytest.raises(ValidationError):
        transitions.table_for("invoice")


def test_unknown_target_status_is_invalid_status():
    with pytest.raises(InvalidStatus):
        transitions.check_transition(transitions.ISSUE, "OPEN", "DONE")


def test_closed_mail_rejects_everything():
    with pytest.raises(EntityClosed):
        transitions.check_transition(transitions.MAIL, "CLOSED", "RESPONDED")
    with pytest.raises(EntityClosed):
        transitions.check_transition(transitions.MAIL, "CLOSED", "OPEN")


def test_legacy_overdue_mail_behaves_as_open():
    transitions.check_transition(transitions.MAIL, "OVERDUE", "RESPONDED")
    transitions.check_transition(transitions.MAIL, "OVERDUE", "CLOSED")


def test_apply_transition_stamps_and_clears_closed_at():
    class Row:
        status = "INSPECT"
        closed_at = None

    row = Row()
    now = datetime(2026, 3, 1, 12, 0)
    t = transitions.apply_transition(transitions.ISSUE, row, "CLOSED", now=now)
    assert row.status == "CLOSED"
    assert row.closed_at == now
    assert t.detail == "INSPECT → CLOSED"

    transitions.apply_transition(transitions.ISSUE, row, "OPEN")
    assert row.closed_at is None


@pytest.mark.parametrize(
    "from_status,to_status",
    [
        (a, b)
        for a in ISSUE_STATUSES
        for b in ISSUE_STATUSES
        if b not in transitions.ISSUE_TABLE.targets(a)
    ],
)
def test_disallowed_issue_moves_leave_status_unchanged(app, actor, from_status, to_status):
    issue_id = _issue_in(app, actor, from_status)
    with session_scope(app) as s:
        before = s.execute(select(AuditEvent).where(AuditEvent.entity_id == str(issue_id))).scalars().all()

    with session_scope(app) as s:
        outcome = run_operation(s, transition_issue, actor, issue_id, to_status)
    assert not outcome.ok
    assert outcome.error.kind == InvalidTransition.kind
    assert _status(app, issue_id) == from_status

    with session_scope(app) as s:
        after = s.execute(select(AuditEvent).where(AuditEvent.entity_id == str(issue_id))).scalars().all()
    assert len(after) == len(before)


def test_issue_full_lifecycle_and_reopen(app, actor):
    issue_id = _issue_in(app, actor, "OPEN")
    with session_scope(app) as s:
        for step in ("WORK_DONE", "INSPECT", "CLOSED"):
            transition_issue(s, actor, issue_id, step)
        issue = s.get(Issue, issue_id)
        assert issue.status == "CLOSED"
        assert issue.closed_at is not None

    with session_scope(app) as s:
        issue = transition_issue(s, actor, issue_id, "open")
        assert issue.status == "OPEN"
        assert issue.closed_at is None

    with session_scope(app) as s:
        details = [
            ev.detail
            for ev in s.execute(
                select(AuditEvent).where(AuditEvent.event_type == "ISSUE_STATUS").order_by(AuditEvent.id)
            ).scalars()
        ]
    assert details == ["OPEN → WORK_DONE", "WORK_DONE → INSPECT", "INSPECT → CLOSED", "CLOSED → OPEN"]


def test_issue_numbers_are_per_type(app, actor):
    with session_scope(app) as s:
        a = raise_issue(s, actor, issue_type="FD-DEF", title="one")
        b = raise_issue(s, actor, issue_type="FD-DEF", title="two")
        c = raise_issue(s, actor, issue_type="snG", title="three")
        assert (a.issue_number, b.issue_number, c.issue_number) == ("FD-DEF-001", "FD-DEF-002", "SNG-001")


def test_raise_issue_validates_input(app, actor):
    with session_scope(app) as s:
        outcome = run_operation(s, raise_issue, actor, issue_type="XYZ", title="bad")
        assert outcome.error.kind == "ValidationError"
        outcome = run_operation(s, raise_issue, actor, issue_type="GEN", title="  ")
        assert outcome.error.kind == "ValidationError"


def test_issue_number_is_unique_per_tenant(app, actor):
    with session_scope(app) as s:
        raise_issue(s, actor, issue_type="NCN", title="first")

    sm = app.extensions["sqlalchemy_sessionmaker"]
    s = sm()
    try:
        s.add(Issue(tenant_id=actor.tenant_id, issue_number="NCN-001", issue_type="NCN", title="copy"))
        with pytest.raises(IntegrityError):
            s.flush()
        s.rollback()
    finally:
        s.close()


def test_concurrent_raise_issue_yields_contiguous_numbers(app, actor):
    k = 6
    sm = app.extensions["sqlalchemy_sessionmaker"]
    errors = []
    start = threading.Barrier(k)

    def worker(i):
        s = sm()
        try:
            start.wait()
            outcome = run_operation(s, raise_issue, actor, issue_type="CM-BRE", title=f"Breach {i}")
            if not outcome.ok:
                errors.append(outcome.error)
        finally:
            s.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(k)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with session_scope(app) as s:
        numbers = sorted(s.execute(select(Issue.issue_number)).scalars())
    assert numbers == [f"CM-BRE-{n:03d}" for n in range(1, k + 1)]
