from __future__ import annotations

from flask import Blueprint, current_app

from app.cde.db import db_session
from app.cde.operations import run_operation
from app.cde.principal import current_principal, require_principal
from app.cde.responses import iso, outcome_response, payload

from . import service
from .models import Document, DocumentVersion

bp = Blueprint("cde_documents", __name__)


def document_to_dict(d: Document) -> dict:
    return {
        "id": d.id,
        "docNumber": d.doc_number,
        "title": d.title,
        "docType": d.doc_type,
        "revision": service.revision_label(d.revision),
        "version": d.version,
        "status": d.status,
        "fileName": d.file_name,
        "fileSize": d.file_size,
        "uploadedAt": iso(d.uploaded_at),
        "authorId": d.author_id,
    }


def version_to_dict(v: DocumentVersion) -> dict:
    return {
        "id": v.id,
        "versionNumber": v.version_number,
        "revision": service.revision_label(v.revision),
        "fileName": v.file_name,
        "fileSize": v.file_size,
        "uploadedAt": iso(v.uploaded_at),
        "authorId": v.author_id,
    }


def _content(data: dict) -> service.DocumentContent | None:
    if not data.get("file_name") and data.get("file_size") is None:
        return None
    return service.DocumentContent(file_name=data.get("file_name") or "", file_size=data.get("file_size"))


def _retries() -> int:
    return current_app.config["VERSION_ALLOC_RETRIES"]


@bp.post("/documents")
@require_principal
def documents_create():
    data = payload()
    outcome = run_operation(
        db_session(),
        service.create_document,
        current_principal(),
        doc_number=data.get("doc_number"),
        title=data.get("title") or "",
        doc_type=data.get("doc_type"),
        project=data.get("project"),
        functional=data.get("functional"),
        spatial=data.get("spatial"),
        role=data.get("role"),
        originator=data.get("originator"),
        content=service.DocumentContent(file_name=data.get("file_name") or "", file_size=data.get("file_size")),
        retries=_retries(),
    )
    return outcome_response(outcome, document_to_dict, status=201)


@bp.get("/documents/<int:document_id>")
@require_principal
def documents_detail(document_id: int):
    outcome = run_operation(db_session(), service.get_document, current_principal(), document_id)
    return outcome_response(outcome, document_to_dict)


@bp.post("/documents/<int:document_id>/versions")
@require_principal
def documents_version_create(document_id: int):
    data = payload()
    outcome = run_operation(
        db_session(),
        service.create_version,
        current_principal(),
        document_id,
        service.DocumentContent(file_name=data.get("file_name") or "", file_size=data.get("file_size")),
        retries=_retries(),
    )
    return outcome_response(outcome, version_to_dict, status=201)


@bp.get("/documents/<int:document_id>/versions")
@require_principal
def documents_versions(document_id: int):
    outcome = run_operation(db_session(), service.list_versions, current_principal(), document_id)
    return outcome_response(outcome, lambda rows: {"versions": [version_to_dict(v) for v in rows]})


@bp.post("/documents/<int:document_id>/revision")
@require_principal
def documents_revision_upgrade(document_id: int):
    outcome = run_operation(
        db_session(),
        service.upgrade_revision,
        current_principal(),
        document_id,
        _content(payload()),
        retries=_retries(),
    )
    return outcome_response(outcome, document_to_dict)


@bp.post("/documents/<int:document_id>/status")
@require_principal
def documents_status(document_id: int):
    outcome = run_operation(
        db_session(),
        service.transition_document,
        current_principal(),
        document_id,
        payload().get("status") or "",
    )
    return outcome_response(outcome, document_to_dict)
