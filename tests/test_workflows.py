"""Tests for the workflow runner."""
import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from app.cde import create_app
from app.cde.db import session_scope
from app.cde.models import AuditEvent, Base, Tenant
from app.cde.modules.documents.models import Document
from app.cde.modules.documents.service import DocumentContent, create_document, transition_document
from app.cde.modules.workflows.models import Workflow, WorkflowStep
from app.cde.modules.workflows.service import (
    annotate_step,
    complete_step,
    is_overdue,
    list_overdue_workflows,
    list_workflows,
    start_workflow,
)
from app.cde.modules.workflows.templates import WORKFLOW_TEMPLATES, get_template
from app.cde.operations import run_operation
from app.cde.principal import Principal

LIFECYCLE_EVENTS = ("WORKFLOW_STARTED", "WORKFLOW_STEP_COMPLETED", "WORKFLOW_COMPLETED")


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
    return Principal(user_id="u1", tenant_id=tenant_id, user_name="Pat Lead")


@pytest.fixture()
def doc_id(app, actor):
    with session_scope(app) as s:
        doc = create_document(
            s,
            actor,
            doc_number="PRJ001-HF-GN-ZZ-DWG-D-0001",
            doc_type="DWG",
            content=DocumentContent(file_name="a.dwg", file_size=10),
        )
        return doc.id


def _start(app, actor, doc_id, template="STANDARD_APPROVAL"):
    with session_scope(app) as s:
        wf = start_workflow(s, actor, template_type=template, target_entity_id=doc_id)
        return wf.id


def _workflow_events(app, wf_id):
    with session_scope(app) as s:
        return (
            s.execute(
                select(AuditEvent)
                .where(AuditEvent.entity_type == "workflow")
                .where(AuditEvent.entity_id == str(wf_id))
                .order_by(AuditEvent.id)
            )
            .scalars()
            .all()
        )


def test_catalog_is_fixed():
    assert set(WORKFLOW_TEMPLATES) == {"STANDARD_APPROVAL", "BSR_APPROVAL"}
    assert get_template("standard_approval").step_count == 4
    assert get_template("BSR_APPROVAL").step_count == 5
    assert get_template("NOPE") is None
    with pytest.raises(TypeError):
        WORKFLOW_TEMPLATES["X"] = None


def test_start_instantiates_steps_and_moves_document_to_review(app, actor, doc_id):
    now = datetime(2026, 4, 1, 8, 0)
    with session_scope(app) as s:
        wf = start_workflow(s, actor, template_type="STANDARD_APPROVAL", target_entity_id=str(doc_id), now=now)
        wf_id = wf.id

    with session_scope(app) as s:
        wf = s.get(Workflow, wf_id)
        assert wf.status == "ACTIVE"
        assert (wf.current_step_number, wf.total_steps) == (1, 4)
        assert wf.due_date == now + timedelta(days=14)
        assert [st.step_name for st in wf.steps] == ["Technical Review", "Quality Check", "Approval", "Publish"]
        assert all(st.completed_at is None for st in wf.steps)
        assert s.get(Document, doc_id).status == "S3"

    (ev,) = _workflow_events(app, wf_id)
    assert ev.event_type == "WORKFLOW_STARTED"
    assert "S0 → S3" in ev.detail


def test_standard_approval_end_to_end(app, actor, doc_id):
    wf_id = _start(app, actor, doc_id)
    for n in (1, 2, 3, 4):
        with session_scope(app) as s:
            wf = complete_step(s, actor, wf_id, n, notes=f"ok {n}")
            assert wf.current_step_number == n + 1

    with session_scope(app) as s:
        wf = s.get(Workflow, wf_id)
        assert wf.status == "COMPLETED"
        assert wf.completed_at is not None
        assert all(st.completed_by == "u1" for st in wf.steps)
        assert s.get(Document, doc_id).status == "A"

    events = _workflow_events(app, wf_id)
    assert [ev.event_type for ev in events] == [
        "WORKFLOW_STARTED",
        "WORKFLOW_STEP_COMPLETED",
        "WORKFLOW_STEP_COMPLETED",
        "WORKFLOW_STEP_COMPLETED",
        "WORKFLOW_COMPLETED",
    ]
    assert events[1].detail == 'Step 1 "Technical Review" completed. Next: Step 2 "Quality Check"'
    assert "auto-approved" in events[-1].detail

    with session_scope(app) as s:
        outcome = run_operation(s, complete_step, actor, wf_id, 2)
    assert outcome.error.kind == "WorkflowAlreadyComplete"
    assert len(_workflow_events(app, wf_id)) == 5


def test_bsr_workflow_emits_n_plus_one_events(app, actor, doc_id):
    wf_id = _start(app, actor, doc_id, template="BSR_APPROVAL")
    for n in range(1, 6):
        with session_scope(app) as s:
            complete_step(s, actor, wf_id, n)
    events = [ev for ev in _workflow_events(app, wf_id) if ev.event_type in LIFECYCLE_EVENTS]
    assert len(events) == 6


def test_out_of_order_step_changes_nothing(app, actor, doc_id):
    wf_id = _start(app, actor, doc_id)
    with session_scope(app) as s:
        outcome = run_operation(s, complete_step, actor, wf_id, 3)
    assert outcome.error.kind == "StepNotCurrent"

    with session_scope(app) as s:
        wf = s.get(Workflow, wf_id)
        assert wf.current_step_number == 1
        assert all(st.completed_at is None for st in wf.steps)
    assert len(_workflow_events(app, wf_id)) == 1


def test_step_cannot_be_completed_twice(app, actor, doc_id):
    wf_id = _start(app, actor, doc_id)
    with session_scope(app) as s:
        complete_step(s, actor, wf_id, 1)
    with session_scope(app) as s:
        outcome = run_operation(s, complete_step, actor, wf_id, 1)
    assert outcome.error.kind == "StepNotCurrent"


def test_review_skipped_when_document_cannot_move(app, actor, doc_id):
    with session_scope(app) as s:
        transition_document(s, actor, doc_id, "S4")
        transition_document(s, actor, doc_id, "A")
        transition_document(s, actor, doc_id, "C")

    wf_id = _start(app, actor, doc_id)
    with session_scope(app) as s:
        assert s.get(Document, doc_id).status == "C"
    (ev,) = _workflow_events(app, wf_id)
    assert "→" not in ev.detail


def test_package_target_needs_no_document(app, actor):
    with session_scope(app) as s:
        wf = start_workflow(s, actor, template_type="BSR_APPROVAL", target_type="package", target_entity_id="PKG-7")
        assert wf.target_entity_id == "PKG-7"
        assert wf.total_steps == 5


def test_start_rejects_unknown_template_and_missing_document(app, actor):
    with session_scope(app) as s:
        outcome = run_operation(s, start_workflow, actor, template_type="FAST_TRACK", target_entity_id="1")
        assert outcome.error.kind == "ValidationError"
        outcome = run_operation(s, start_workflow, actor, template_type="STANDARD_APPROVAL", target_entity_id="999")
        assert outcome.error.kind == "NotFound"
    with session_scope(app) as s:
        assert s.execute(select(Workflow)).scalars().all() == []


def test_annotate_step_does_not_advance(app, actor, doc_id):
    wf_id = _start(app, actor, doc_id)
    with session_scope(app) as s:
        step = annotate_step(s, actor, wf_id, 2, "Check fire stopping photos")
        assert step.notes == "Check fire stopping photos"

    with session_scope(app) as s:
        wf = s.get(Workflow, wf_id)
        assert wf.current_step_number == 1
        st = s.execute(
            select(WorkflowStep).where(WorkflowStep.workflow_id == wf_id).where(WorkflowStep.step_number == 2)
        ).scalar_one()
        assert st.completed_at is None

    types = [ev.event_type for ev in _workflow_events(app, wf_id)]
    assert types == ["WORKFLOW_STARTED", "WORKFLOW_STEP_NOTES"]
    assert len([t for t in types if t in LIFECYCLE_EVENTS]) == 1


def test_list_workflows_filters_by_status(app, actor, doc_id):
    wf_id = _start(app, actor, doc_id)
    _start(app, actor, doc_id, template="BSR_APPROVAL")
    for n in (1, 2, 3, 4):
        with session_scope(app) as s:
            complete_step(s, actor, wf_id, n)

    with session_scope(app) as s:
        assert [wf.id for wf in list_workflows(s, actor, status="completed")] == [wf_id]
        assert len(list_workflows(s, actor)) == 2
        outcome = run_operation(s, list_workflows, actor, status="PAUSED")
        assert outcome.error.kind == "ValidationError"


def test_overdue_workflows_are_derived_from_due_date(app, actor, doc_id):
    started = datetime(2026, 3, 2, 9, 0)
    with session_scope(app) as s:
        late = start_workflow(s, actor, template_type="STANDARD_APPROVAL", target_entity_id=doc_id, due_days=5, now=started)
        later = start_workflow(s, actor, template_type="BSR_APPROVAL", target_entity_id=doc_id, due_days=3, now=started)
        on_time = start_workflow(s, actor, template_type="BSR_APPROVAL", target_entity_id=doc_id, due_days=30, now=started)
        late_id, later_id, on_time_id = late.id, later.id, on_time.id

    now = started + timedelta(days=10)
    with session_scope(app) as s:
        assert [wf.id for wf in list_overdue_workflows(s, actor, now=now)] == [later_id, late_id]
        assert list_overdue_workflows(s, actor, now=started + timedelta(days=1)) == []
        assert not is_overdue(s.get(Workflow, on_time_id), now)

    # a completed workflow is never overdue
    for n in (1, 2, 3, 4):
        with session_scope(app) as s:
            complete_step(s, actor, late_id, n)
    with session_scope(app) as s:
        assert [wf.id for wf in list_overdue_workflows(s, actor, now=now)] == [later_id]
        assert not is_overdue(s.get(Workflow, late_id), now)


def test_overdue_accepts_aware_clock_and_is_tenant_scoped(app, actor, doc_id):
    started = datetime(2026, 3, 2, 9, 0)
    with session_scope(app) as s:
        wf = start_workflow(s, actor, template_type="STANDARD_APPROVAL", target_entity_id=doc_id, due_days=1, now=started)
        wf_id = wf.id
        other = Tenant(slug="other", name="Other Co")
        s.add(other)
        s.flush()
        stranger = Principal(user_id="u9", tenant_id=other.id)

    aware = datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)
    with session_scope(app) as s:
        assert [w.id for w in list_overdue_workflows(s, actor, now=aware)] == [wf_id]
        assert list_overdue_workflows(s, stranger, now=aware) == []


def test_concurrent_complete_step_has_one_winner(app, actor, doc_id):
    wf_id = _start(app, actor, doc_id)
    k = 6
    sm = app.extensions["sqlalchemy_sessionmaker"]
    outcomes = []
    start = threading.Barrier(k)

    def worker(i):
        s = sm()
        try:
            start.wait()
            outcomes.append(run_operation(s, complete_step, actor, wf_id, 1, notes=f"reviewer {i}"))
        finally:
            s.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(k)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(outcomes) == k
    assert sum(1 for o in outcomes if o.ok) == 1
    assert sorted(o.error.kind for o in outcomes if not o.ok) == ["StepNotCurrent"] * (k - 1)

    with session_scope(app) as s:
        wf = s.get(Workflow, wf_id)
        assert wf.current_step_number == 2
        assert wf.status == "ACTIVE"
        (step,) = [st for st in wf.steps if st.step_number == 1]
        assert step.completed_at is not None
    types = [ev.event_type for ev in _workflow_events(app, wf_id)]
    assert types == ["WORKFLOW_STARTED", "WORKFLOW_STEP_COMPLETED"]
