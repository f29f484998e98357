from __future__ import annotations

from flask import Blueprint, current_app, request

from app.cde.db import db_session
from app.cde.operations import run_operation
from app.cde.principal import current_principal, require_principal
from app.cde.responses import bad_request, iso, optional_int, outcome_response, payload

from . import service
from .models import Workflow, WorkflowStep
from .templates import WORKFLOW_TEMPLATES

bp = Blueprint("cde_workflows", __name__)


def step_to_dict(st: WorkflowStep) -> dict:
    return {
        "stepNumber": st.step_number,
        "stepName": st.step_name,
        "roleHint": st.role_hint,
        "completedAt": iso(st.completed_at),
        "completedBy": st.completed_by,
        "notes": st.notes,
    }


def workflow_to_dict(wf: Workflow) -> dict:
    return {
        "id": wf.id,
        "ref": service.workflow_ref(wf),
        "workflowType": wf.workflow_type,
        "label": wf.template_label,
        "targetType": wf.target_type,
        "targetEntityId": wf.target_entity_id,
        "currentStep": wf.current_step_number,
        "totalSteps": wf.total_steps,
        "status": wf.status,
        "startedBy": wf.started_by,
        "startedAt": iso(wf.started_at),
        "dueDate": iso(wf.due_date),
        "overdue": service.is_overdue(wf),
        "completedAt": iso(wf.completed_at),
        "steps": [step_to_dict(st) for st in wf.steps],
    }


@bp.get("/workflow-templates")
def workflow_templates():
    return {
        "templates": [
            {
                "type": t.type,
                "label": t.label,
                "description": t.description,
                "steps": [{"stepNumber": st.step_number, "stepName": st.step_name, "roleHint": st.role_hint} for st in t.steps],
            }
            for t in WORKFLOW_TEMPLATES.values()
        ]
    }


@bp.get("/workflows")
@require_principal
def workflows_list():
    outcome = run_operation(db_session(), service.list_workflows, current_principal(), status=request.args.get("status"))
    return outcome_response(outcome, lambda rows: {"workflows": [workflow_to_dict(wf) for wf in rows]})


@bp.get("/workflows/overdue")
@require_principal
def workflows_overdue():
    outcome = run_operation(db_session(), service.list_overdue_workflows, current_principal())
    return outcome_response(outcome, lambda rows: {"workflows": [workflow_to_dict(wf) for wf in rows]})


@bp.post("/workflows")
@require_principal
def workflows_start():
    data = payload()
    due_days = optional_int(data, "due_days")
    outcome = run_operation(
        db_session(),
        service.start_workflow,
        current_principal(),
        template_type=data.get("workflow_type") or "",
        target_type=data.get("target_type") or service.TARGET_DOCUMENT,
        target_entity_id=data.get("target_entity_id"),
        due_days=due_days if due_days is not None else current_app.config["WORKFLOW_DEFAULT_DUE_DAYS"],
    )
    return outcome_response(outcome, workflow_to_dict, status=201)


@bp.get("/workflows/<int:workflow_id>")
@require_principal
def workflows_detail(workflow_id: int):
    outcome = run_operation(db_session(), service.get_workflow, current_principal(), workflow_id)
    return outcome_response(outcome, workflow_to_dict)


@bp.post("/workflows/<int:workflow_id>/steps/<int:step_number>/complete")
@require_principal
def workflows_step_complete(workflow_id: int, step_number: int):
    outcome = run_operation(
        db_session(),
        service.complete_step,
        current_principal(),
        workflow_id,
        step_number,
        notes=payload().get("notes"),
    )
    return outcome_response(outcome, workflow_to_dict)


@bp.post("/workflows/<int:workflow_id>/steps/<int:step_number>/notes")
@require_principal
def workflows_step_notes(workflow_id: int, step_number: int):
    notes = payload().get("notes")
    if not notes:
        return bad_request("notes is required.")
    outcome = run_operation(db_session(), service.annotate_step, current_principal(), workflow_id, step_number, notes)
    return outcome_response(outcome, step_to_dict)
