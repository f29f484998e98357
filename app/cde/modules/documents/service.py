"""
Document version controller.
Handles registration, content versions, revision upgrades and ISO status changes.

Version numbering is continuous for the life of a document: a revision
upgrade never restarts it, so DocumentVersion rows ordered by version_number
are always the contiguous history 1..N.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from app.cde import transitions
from app.cde.audit import record_event
from app.cde.constants import AUDIT_EVENTS, DOC_TYPES, ENTITY_DOCUMENT
from app.cde.errors import ConcurrentUpdate, NotFound, ValidationError
from app.cde.principal import Principal
from app.cde.sequences import next_value
from app.cde.utils import normalize_text, resolve_now

from .models import Document, DocumentVersion
from .numbering import (
    DEFAULT_ORIGINATOR,
    DEFAULT_ROLE,
    DEFAULT_SPATIAL,
    build_file_name,
    file_extension,
    generate_doc_number,
    guess_doc_type,
    parse_doc_number,
)

logger = logging.getLogger(__name__)

DEFAULT_VERSION_RETRIES = 5
INITIAL_STATUS = "S0"
SEQUENCE_SCOPE = "document"
DEFAULT_FUNCTIONAL = "GN"


@dataclass(frozen=True)
class DocumentContent:
    file_name: str
    file_size: int


def revision_label(revision: int) -> str:
    """
    Integer revision -> letter label, Excel-style: 1 -> "A", 26 -> "Z", 27 -> "AA".
    """
    if revision < 1:
        raise ValueError(f"Unsupported revision number: {revision!r}")
    n = revision
    out = []
    while n > 0:
        n -= 1
        out.append(chr(ord("A") + (n % 26)))
        n //= 26
    return "".join(reversed(out))


def revision_number(label: str) -> int:
    """Inverse of revision_label: "A" -> 1, "AA" -> 27."""
    cur = normalize_text(label).upper()
    if not re.fullmatch(r"[A-Z]+", cur):
        raise ValueError(f"Unsupported revision format: {label!r}")
    n = 0
    for ch in cur:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n


def _clean_content(content: DocumentContent) -> DocumentContent:
    file_name = secure_filename(content.file_name or "")
    if not file_name:
        raise ValidationError("file_name is required.")
    try:
        file_size = int(content.file_size)
    except (TypeError, ValueError):
        raise ValidationError("file_size must be an integer.") from None
    if file_size < 0:
        raise ValidationError("file_size must not be negative.")
    return DocumentContent(file_name=file_name, file_size=file_size)


def get_document(s: Session, actor: Principal, document_id: int, *, for_update: bool = False) -> Document:
    stmt = select(Document).where(Document.id == document_id).where(Document.tenant_id == actor.tenant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    doc = s.execute(stmt).scalar_one_or_none()
    if doc is None:
        raise NotFound("Document", document_id)
    return doc


def _allocate_version_number(s: Session, doc: Document, *, retries: int) -> int:
    """
    Compare-and-increment documents.version. Concurrent writers for the same
    document either wait on the row lock or lose the compare and retry with a
    fresh read; they can never claim the same number.
    """
    for attempt in range(1, retries + 1):
        current = s.execute(select(Document.version).where(Document.id == doc.id)).scalar_one()
        res = s.execute(
            update(Document)
            .where(Document.id == doc.id)
            .where(Document.version == current)
            .values(version=current + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 1:
            return current + 1
        logger.warning("Version allocation conflict doc_id=%s attempt=%d saw=%s", doc.id, attempt, current)
    raise ConcurrentUpdate(f"Could not allocate a version for document {doc.id} after {retries} attempts")


def _append_version(
    s: Session,
    doc: Document,
    content: DocumentContent,
    *,
    actor: Principal,
    now: datetime,
    retries: int,
) -> DocumentVersion:
    number = _allocate_version_number(s, doc, retries=retries)
    v = DocumentVersion(
        document_id=doc.id,
        version_number=number,
        revision=doc.revision,
        file_name=content.file_name,
        file_size=content.file_size,
        uploaded_at=now,
        author_id=actor.user_id,
    )
    s.add(v)

    doc.version = number
    doc.file_name = v.file_name
    doc.file_size = v.file_size
    doc.uploaded_at = v.uploaded_at
    doc.author_id = v.author_id
    s.flush()
    return v


def create_document(
    s: Session,
    actor: Principal,
    *,
    content: DocumentContent,
    doc_number: str | None = None,
    title: str = "",
    doc_type: str | None = None,
    project: str | None = None,
    functional: str | None = None,
    spatial: str | None = None,
    role: str | None = None,
    originator: str | None = None,
    now: datetime | None = None,
    retries: int = DEFAULT_VERSION_RETRIES,
) -> Document:
    """
    Register a new document at revision A with its first version.

    An explicit `doc_number` must be an ISO 19650 number and is stored in its
    canonical form. Without one, `project` is required and the number is
    generated from the next per-tenant sequence for that project and type.
    The type defaults to the number's type field, then to a guess from the
    file name, then to GEN.
    """
    doc_type = normalize_text(doc_type).upper() or None
    if doc_type is not None and doc_type not in DOC_TYPES:
        raise ValidationError(f"Invalid doc_type. Must be one of: {', '.join(DOC_TYPES)}")
    content = _clean_content(content)

    if normalize_text(doc_number):
        parsed = parse_doc_number(doc_number)
        doc_number = str(parsed)
        if doc_type is None and parsed.doc_type in DOC_TYPES:
            doc_type = parsed.doc_type
        doc_type = doc_type or guess_doc_type(content.file_name) or "GEN"
    else:
        project = normalize_text(project).upper()
        if not project:
            raise ValidationError("doc_number or project is required.")
        doc_type = doc_type or guess_doc_type(content.file_name) or "GEN"
        key = f"{project}-{doc_type}"
        if len(key) > 32:
            raise ValidationError("project code is too long.")
        seq = next_value(s, tenant_id=actor.tenant_id, scope=SEQUENCE_SCOPE, key=key)
        doc_number = generate_doc_number(
            project,
            functional or DEFAULT_FUNCTIONAL,
            doc_type,
            seq,
            originator=originator or DEFAULT_ORIGINATOR,
            spatial=spatial or DEFAULT_SPATIAL,
            role=role or DEFAULT_ROLE,
        )
    if len(doc_number) > 64:
        raise ValidationError("doc_number must be at most 64 characters.")

    exists = s.execute(
        select(Document.id).where(Document.tenant_id == actor.tenant_id).where(Document.doc_number == doc_number)
    ).scalar_one_or_none()
    if exists is not None:
        raise ValidationError(f"Document number {doc_number} already exists.")

    now = resolve_now(now)
    doc = Document(
        tenant_id=actor.tenant_id,
        doc_number=doc_number,
        title=normalize_text(title),
        doc_type=doc_type,
        revision=1,
        version=0,
        status=INITIAL_STATUS,
        created_at=now,
    )
    s.add(doc)
    s.flush()

    _append_version(s, doc, content, actor=actor, now=now, retries=retries)

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.UPLOAD,
        entity_type=ENTITY_DOCUMENT,
        entity_id=doc.id,
        entity_ref=doc.doc_number,
        detail=f"Uploaded {doc.file_name} (Rev {revision_label(doc.revision)}, v{doc.version})",
    )
    logger.info("Document created tenant=%s doc=%s", actor.tenant_id, doc.doc_number)
    return doc


def create_version(
    s: Session,
    actor: Principal,
    document_id: int,
    content: DocumentContent,
    *,
    now: datetime | None = None,
    retries: int = DEFAULT_VERSION_RETRIES,
) -> DocumentVersion:
    """New content within the current revision."""
    content = _clean_content(content)
    doc = get_document(s, actor, document_id, for_update=True)
    old_version = doc.version

    v = _append_version(s, doc, content, actor=actor, now=resolve_now(now), retries=retries)

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.DOC_VERSION_CREATED,
        entity_type=ENTITY_DOCUMENT,
        entity_id=doc.id,
        entity_ref=doc.doc_number,
        detail=f"v{old_version} → v{v.version_number}",
    )
    return v


def list_versions(s: Session, actor: Principal, document_id: int) -> list[DocumentVersion]:
    """Version history, newest first. Pure read; not audited."""
    get_document(s, actor, document_id)
    return list(
        s.execute(
            select(DocumentVersion)
            .where(DocumentVersion.document_id == document_id)
            .order_by(DocumentVersion.version_number.desc())
        )
        .scalars()
        .all()
    )


def upgrade_revision(
    s: Session,
    actor: Principal,
    document_id: int,
    content: DocumentContent | None = None,
    *,
    now: datetime | None = None,
    retries: int = DEFAULT_VERSION_RETRIES,
) -> Document:
    """
    Supersede the current revision (A -> B, Z -> AA).

    With new content a version is allocated under the new revision; version
    numbering carries on from the previous revision. The document returns to
    work-in-progress (S0). New content is stored under the controlled name
    `<doc_number>_Rev<label>.<ext>`.
    """
    if content is not None:
        content = _clean_content(content)
    doc = get_document(s, actor, document_id, for_update=True)
    old_rev, old_version, old_status = doc.revision, doc.version, doc.status

    doc.revision = old_rev + 1
    doc.status = INITIAL_STATUS
    if content is not None:
        ext = file_extension(content.file_name) or file_extension(doc.file_name) or "pdf"
        content = DocumentContent(
            file_name=build_file_name(doc.doc_number, revision_label(doc.revision), ext),
            file_size=content.file_size,
        )
        _append_version(s, doc, content, actor=actor, now=resolve_now(now), retries=retries)
    s.flush()

    detail = f"Rev {revision_label(old_rev)} → Rev {revision_label(doc.revision)}"
    if doc.version != old_version:
        detail += f" (v{old_version} → v{doc.version})"
    if old_status != doc.status:
        detail += f"; status {old_status} → {doc.status}"
    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.DOC_REVISION_UPGRADED,
        entity_type=ENTITY_DOCUMENT,
        entity_id=doc.id,
        entity_ref=doc.doc_number,
        detail=detail,
    )
    logger.info("Revision upgraded doc=%s %s", doc.doc_number, detail)
    return doc


def transition_document(s: Session, actor: Principal, document_id: int, to_status: str) -> Document:
    """ISO 19650 suitability change through the document transition table."""
    to_status = normalize_text(to_status).upper()
    doc = get_document(s, actor, document_id, for_update=True)
    t = transitions.apply_transition(transitions.DOCUMENT, doc, to_status)
    s.flush()

    record_event(
        s,
        actor=actor,
        event_type=AUDIT_EVENTS.STATUS,
        entity_type=ENTITY_DOCUMENT,
        entity_id=doc.id,
        entity_ref=doc.doc_number,
        detail=t.detail,
    )
    return doc
