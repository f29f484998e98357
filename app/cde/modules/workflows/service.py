"""
Workflow runner.

A workflow is instantiated from a catalog template and advanced one step at
a time, strictly in order. Every call that changes a workflow writes exactly
one audit event: WORKFLOW_STARTED on start, WORKFLOW_STEP_COMPLETED for each
step but the last, and WORKFLOW_COMPLETED for the last. A fully run N-step
workflow therefore carries N + 1 lifecycle events.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.cde import transitions
from app.cde.audit import record_event
from app.cde.constants import AUDIT_EVENTS, ENTITY_WORKFLOW
from app.cde.errors import NotFound, StepNotCurrent, ValidationError, WorkflowAlreadyComplete
from app.cde.modules.documents.models import Document
from app.cde.modules.documents.service import get_document
from app.cde.principal import Principal
from app.cde.utils import as_naive_utc, normalize_text, resolve_now

from .models import Workflow, WorkflowStep
from .templates import CATALOG_VERSION, WORKFLOW_TEMPLATES, get_template

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"
COMPLETED = "COMPLETED"
VALID_STATUSES = {ACTIVE, COMPLETED}

TARGET_DOCUMENT = "document"
TARGET_PACKAGE = "package"
TARGET_TYPES = {TARGET_DOCUMENT, TARGET_PACKAGE}

DEFAULT_DUE_DAYS = 14

# Document suitability the runner moves its target to
REVIEW_STATUS = "S3"
APPROVED_STATUS = "A"


def workflow_ref(wf: Workflow) -> str:
    return f"{wf.workflow_type} #{wf.id}"


def get_workflow(s: Session, actor: Principal, workflow_id: int, *, for_update: bool = False) -> Workflow:
    stmt = select(Workflow).where(Workflow.id == workflow_id).where(Workflow.tenant_id == actor.tenant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    wf = s.execute(stmt).scalar_one_or_none()
    if wf is None:
        raise NotFound("Workflow", workflow_id)
    return wf


def list_workflows(s: Session, actor: Principal, *, status: str | None = None) -> list[Workflow]:
    stmt = select(Workflow).where(Workflow.tenant_id == actor.tenant_id)
    status = normalize_text(status).upper()
    if status:
        if status not in VALID_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(VALID_STATUSES))}")
        stmt = stmt.where(Workflow.status == status)
    return list(s.execute(stmt.order_by(Workflow.started_at.desc(), Workflow.id.desc())).scalars().all())


def is_overdue(wf: Workflow, now: datetime | None = None) -> bool:
    """Derived, never stored: an ACTIVE workflow past its due date."""
    if wf.status != ACTIVE or wf.due_date is None:
        return False
    return as_naive_utc(wf.due_date) < resolve_now(now)


def list_overdue_workflows(s: Session, actor: Principal, *, now: datetime | None = None) -> list[Workflow]:
    """ACTIVE workflows whose due date has passed, longest overdue first."""
    stmt = (
        select(Workflow)
        .where(Workflow.tenant_id == actor.tenant_id)
        .where(Workflow.status == ACTIVE)
        .where(Workflow.due_date.is_not(None))
        .where(Workflow.due_date < resolve_now(now))
        .order_by(Workflow.due_date.asc(), Workflow.id.asc())
    )
    return list(s.execute(stmt).scalars().all())


def _step(s: Session, wf: Workflow, step_number: int) -> WorkflowStep:
    st = s.execute(
        select(WorkflowStep)
        .where(WorkflowStep.workflow_id == wf.id)
        .where(WorkflowStep.step_number == step_number)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if st is None:
        raise NotFound("WorkflowStep", f"{wf.id}/{step_number}")
    return st


def _move_document(doc: Document, to_status: str) -> transitions.Transition | None:
    """Best-effort suitability change; skipped when the table does not allow it."""
    if doc.status == to_status or not transitions.can_transition(transitions.DOCUMENT, doc.status, to_status):
        return None
    return transitions.apply_transition(transitions.DOCUMENT, doc, to_status)


def _target_document(s: Session, actor: Principal, wf: Workflow) -> Document | None:
    if wf.target_type != TARGET_DOCUMENT:
        return None
    return get_document(s, actor, int(wf.target_entity_id), for_update=True)


def start_workflow(
    s: Session,
    actor: Principal,
    *,
    template_type: str,
    target_entity_id: object,
    target_type: str = TARGET_DOCUMENT,
    due_days: int | None = None,
    now: datetime | None = None,
) -> Workflow:
    """Instantiate steps 1..N from the template; the workflow starts on step 1."""
    template = get_template(template_type)
    if template is None:
        raise ValidationError(f"Invalid workflow type. Must be one of: {', '.join(WORKFLOW_TEMPLATES)}")

    target_type = normalize_text(target_type).lower() or TARGET_DOCUMENT
    if target_type not in TARGET_TYPES:
        raise ValidationError(f"Invalid target_type. Must be one of: {', '.join(sorted(TARGET_TYPES))}")
    target_id = normalize_text(str(target_entity_id) if target_entity_id is not None else "")
    if not target_id:
        raise ValidationError("target_entity_id is required.")

    doc = None
    if target_type == TARGET_DOCUMENT:
        try:
            doc_id = int(target_id)
        except ValueError:
            raise ValidationError("target_entity_id must be a document id.") from None
        doc = get_document(s, actor, doc_id, for_update=True)

    if due_days is None:
        due_days = DEFAULT_DUE_DAYS
    if due_days < 0:
        raise ValidationError("due_days must not be negative.")

    now = resolve_now(now)
    wf = Workflow(
        tenant_id=actor.tenant_id,
        workflow_type=template.type,
        template_label=template.label,
        catalog_version=CATALOG_VERSION,
        target_type=target_type,
        target_entity_id=target_id,
        current_step_number=1,
        total_steps=template.step_count,
        status=ACTIVE,
        started_by=actor.user_id,
        started_at=now,
        due_date=now + timedelta(days=due_days),
    )
    wf.steps = [
        WorkflowStep(step_number=st.step_number, step_name=st.step_name, role_hint=st.role_hint)
        for st in template.steps
    ]
    s.add(wf)

    moved = _move_document(doc, REVIEW_STATUS) if doc is not None else None
    s.flush()

    detail = f"Started {template.label} ({template.step_count} steps)"
    if moved is not None:
        detail += f"; {doc.doc_number} {moved.detail}"
    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.WORKFLOW_STARTED,
        entity_type=ENTITY_WORKFLOW,
        entity_id=wf.id,
        entity_ref=workflow_ref(wf),
        detail=detail,
    )
    logger.info("Workflow started id=%s type=%s target=%s:%s", wf.id, wf.workflow_type, target_type, target_id)
    return wf


def complete_step(
    s: Session,
    actor: Principal,
    workflow_id: int,
    step_number: int,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> Workflow:
    """
    Complete the current step and advance the pointer.

    The pointer moves with a compare-and-increment, so of two concurrent
    completions of the same step exactly one wins; the other gets StepNotCurrent.
    """
    wf = get_workflow(s, actor, workflow_id, for_update=True)
    if wf.status == COMPLETED:
        raise WorkflowAlreadyComplete(f"Workflow {workflow_id} is already complete")
    if step_number != wf.current_step_number:
        raise StepNotCurrent(step_number, wf.current_step_number)

    step = _step(s, wf, step_number)
    res = s.execute(
        update(Workflow)
        .where(Workflow.id == wf.id)
        .where(Workflow.current_step_number == step_number)
        .values(current_step_number=step_number + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        logger.warning("Step pointer moved underneath workflow=%s step=%s", wf.id, step_number)
        current = s.execute(select(Workflow.current_step_number).where(Workflow.id == wf.id)).scalar_one()
        raise StepNotCurrent(step_number, current)

    now = resolve_now(now)
    wf.current_step_number = step_number + 1
    step.completed_at = now
    step.completed_by = actor.user_id
    notes = normalize_text(notes)
    if notes:
        step.notes = notes

    if wf.current_step_number > wf.total_steps:
        wf.status = COMPLETED
        wf.completed_at = now
        doc = _target_document(s, actor, wf)
        moved = _move_document(doc, APPROVED_STATUS) if doc is not None else None
        s.flush()

        detail = f"Workflow completed. All {wf.total_steps} steps done."
        if moved is not None:
            detail += f" {doc.doc_number} auto-approved ({moved.detail})."
        record_event(
            s,
            actor=actor,
            event_type=AUDIT_EVENTS.WORKFLOW_COMPLETED,
            entity_type=ENTITY_WORKFLOW,
            entity_id=wf.id,
            entity_ref=workflow_ref(wf),
            detail=detail,
        )
        logger.info("Workflow completed id=%s", wf.id)
        return wf

    s.flush()
    nxt = _step(s, wf, wf.current_step_number)
    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.WORKFLOW_STEP_COMPLETED,
        entity_type=ENTITY_WORKFLOW,
        entity_id=wf.id,
        entity_ref=workflow_ref(wf),
        detail=(
            f'Step {step.step_number} "{step.step_name}" completed. '
            f'Next: Step {nxt.step_number} "{nxt.step_name}"'
        ),
    )
    return wf


def annotate_step(s: Session, actor: Principal, workflow_id: int, step_number: int, notes: str) -> WorkflowStep:
    """Attach notes to a step without completing it. Not a lifecycle event."""
    notes = normalize_text(notes)
    if not notes:
        raise ValidationError("notes is required.")
    wf = get_workflow(s, actor, workflow_id, for_update=True)
    step = _step(s, wf, step_number)
    step.notes = notes
    s.flush()

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.WORKFLOW_STEP_NOTES,
        entity_type=ENTITY_WORKFLOW,
        entity_id=wf.id,
        entity_ref=workflow_ref(wf),
        detail=f'Notes updated on step {step.step_number} "{step.step_name}"',
    )
    return step
