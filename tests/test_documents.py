"""Tests for the document version controller."""
import threading
from datetime import datetime

import pytest
from sqlalchemy import select

from app.cde import create_app
from app.cde.db import session_scope
from app.cde.models import AuditEvent, Base, Tenant
from app.cde.modules.documents.models import Document, DocumentVersion
from app.cde.modules.documents.service import (
    DocumentContent,
    create_document,
    create_version,
    list_versions,
    revision_label,
    revision_number,
    transition_document,
    upgrade_revision,
)
from app.cde.operations import run_operation
from app.cde.principal import Principal


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
    return Principal(user_id="u1", tenant_id=tenant_id, user_name="Dana Controller")


@pytest.fixture()
def doc_id(app, actor):
    with session_scope(app) as s:
        doc = create_document(
            s,
            actor,
            doc_number="prj001-hf-fd-zz-fra-s-0001",
            title="Fire Risk Assessment",
            doc_type="FRA",
            content=DocumentContent(file_name="fra.pdf", file_size=1024),
        )
        return doc.id


def _events(app, doc_id, event_type):
    with session_scope(app) as s:
        return (
            s.execute(
                select(AuditEvent)
                .where(AuditEvent.entity_type == "document")
                .where(AuditEvent.entity_id == str(doc_id))
                .where(AuditEvent.event_type == event_type)
                .order_by(AuditEvent.id)
            )
            .scalars()
            .all()
        )


def test_revision_labels():
    assert [revision_label(n) for n in (1, 2, 26, 27, 28, 52, 53)] == ["A", "B", "Z", "AA", "AB", "AZ", "BA"]
    assert revision_number("aa") == 27
    with pytest.raises(ValueError):
        revision_label(0)
    with pytest.raises(ValueError):
        revision_number("A1")


def test_create_document_starts_at_rev_a_v1(app, doc_id):
    with session_scope(app) as s:
        doc = s.get(Document, doc_id)
        assert doc.doc_number == "PRJ001-HF-FD-ZZ-FRA-S-0001"
        assert (doc.revision, doc.version, doc.status) == (1, 1, "S0")
        assert doc.file_name == "fra.pdf"
    (ev,) = _events(app, doc_id, "UPLOAD")
    assert ev.detail == "Uploaded fra.pdf (Rev A, v1)"
    assert ev.user_name == "Dana Controller"


def test_duplicate_doc_number_rejected(app, actor, doc_id):
    with session_scope(app) as s:
        outcome = run_operation(
            s,
            create_document,
            actor,
            doc_number="PRJ001-HF-FD-ZZ-FRA-S-0001",
            content=DocumentContent(file_name="x.pdf", file_size=1),
        )
    assert outcome.error.kind == "ValidationError"


def test_create_version_increments_and_snapshots(app, actor, doc_id):
    with session_scope(app) as s:
        v = create_version(s, actor, doc_id, DocumentContent(file_name="fra v2.pdf", file_size=2048))
        assert v.version_number == 2
        assert v.file_name == "fra_v2.pdf"
        assert v.revision == 1

    with session_scope(app) as s:
        doc = s.get(Document, doc_id)
        assert doc.version == 2
        assert doc.file_size == 2048
        versions = list_versions(s, actor, doc_id)
        assert [v.version_number for v in versions] == [2, 1]
        assert versions[1].file_name == "fra.pdf"

    (ev,) = _events(app, doc_id, "DOC_VERSION_CREATED")
    assert ev.detail == "v1 → v2"


def test_list_versions_is_not_audited(app, actor, doc_id):
    with session_scope(app) as s:
        before = s.execute(select(AuditEvent)).scalars().all()
        list_versions(s, actor, doc_id)
    with session_scope(app) as s:
        after = s.execute(select(AuditEvent)).scalars().all()
    assert len(after) == len(before)


def test_create_version_rejects_bad_content(app, actor, doc_id):
    with session_scope(app) as s:
        outcome = run_operation(s, create_version, actor, doc_id, DocumentContent(file_name="", file_size=10))
        assert outcome.error.kind == "ValidationError"
        outcome = run_operation(s, create_version, actor, doc_id, DocumentContent(file_name="a.pdf", file_size=-1))
        assert outcome.error.kind == "ValidationError"
    with session_scope(app) as s:
        assert s.get(Document, doc_id).version == 1


def test_upgrade_revision_continues_version_numbering(app, actor, doc_id):
    with session_scope(app) as s:
        transition_document(s, actor, doc_id, "S3")

    with session_scope(app) as s:
        doc = upgrade_revision(
            s,
            actor,
            doc_id,
            DocumentContent(file_name="fra-revb.pdf", file_size=4096),
            now=datetime(2026, 5, 1, 9, 0),
        )
        assert revision_label(doc.revision) == "B"
        assert doc.version == 2
        assert doc.status == "S0"
        assert doc.file_name == "PRJ001-HF-FD-ZZ-FRA-S-0001_RevB.pdf"

    with session_scope(app) as s:
        rows = s.execute(select(DocumentVersion).where(DocumentVersion.document_id == doc_id)).scalars().all()
        assert sorted((r.version_number, r.revision) for r in rows) == [(1, 1), (2, 2)]
        assert sorted(r.file_name for r in rows) == ["PRJ001-HF-FD-ZZ-FRA-S-0001_RevB.pdf", "fra.pdf"]

    (ev,) = _events(app, doc_id, "DOC_REVISION_UPGRADED")
    assert ev.detail == "Rev A → Rev B (v1 → v2); status S3 → S0"


def test_upgrade_revision_without_content(app, actor, doc_id):
    with session_scope(app) as s:
        doc = upgrade_revision(s, actor, doc_id)
        assert (doc.revision, doc.version) == (2, 1)
    (ev,) = _events(app, doc_id, "DOC_REVISION_UPGRADED")
    assert ev.detail == "Rev A → Rev B"


def test_document_status_transitions(app, actor, doc_id):
    with session_scope(app) as s:
        transition_document(s, actor, doc_id, "s3")
        transition_document(s, actor, doc_id, "A")

    with session_scope(app) as s:
        outcome = run_operation(s, transition_document, actor, doc_id, "S0")
    assert outcome.error.kind == "InvalidTransition"

    with session_scope(app) as s:
        outcome = run_operation(s, transition_document, actor, doc_id, "Z9")
    assert outcome.error.kind == "InvalidStatus"

    assert [ev.detail for ev in _events(app, doc_id, "STATUS")] == ["S0 → S3", "S3 → A"]


def test_other_tenant_sees_not_found(app, actor, doc_id):
    with session_scope(app) as s:
        other = Tenant(slug="other", name="Other Co")
        s.add(other)
        s.flush()
        stranger = Principal(user_id="u9", tenant_id=other.id)
    with session_scope(app) as s:
        outcome = run_operation(s, create_version, stranger, doc_id, DocumentContent(file_name="x.pdf", file_size=1))
    assert outcome.error.kind == "NotFound"


def test_concurrent_create_version_yields_contiguous_versions(app, actor, doc_id):
    k = 8
    sm = app.extensions["sqlalchemy_sessionmaker"]
    errors = []
    start = threading.Barrier(k)

    def worker(i):
        s = sm()
        try:
            start.wait()
            outcome = run_operation(
                s, create_version, actor, doc_id, DocumentContent(file_name=f"v{i}.pdf", file_size=i)
            )
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
        numbers = sorted(
            s.execute(select(DocumentVersion.version_number).where(DocumentVersion.document_id == doc_id)).scalars()
        )
        assert numbers == list(range(1, k + 2))
        assert s.get(Document, doc_id).version == k + 1
    assert len(_events(app, doc_id, "DOC_VERSION_CREATED")) == k


def test_invalid_doc_number_rejected(app, actor):
    with session_scope(app) as s:
        outcome = run_operation(
            s, create_document, actor, doc_number="DOC-1", content=DocumentContent(file_name="a.pdf", file_size=1)
        )
    assert outcome.error.kind == "ValidationError"
    assert "PROJECT-ORIGINATOR-FUNCTIONAL-SPATIAL-TYPE-ROLE-SEQUENCE" in outcome.error.message
    with session_scope(app) as s:
        assert s.execute(select(Document)).scalars().all() == []


def test_doc_type_taken_from_number(app, actor):
    with session_scope(app) as s:
        doc = create_document(
            s, actor, doc_number="PRJ001-HF-DM-RO-CRT-E-12", content=DocumentContent(file_name="cert.pdf", file_size=5)
        )
        assert doc.doc_number == "PRJ001-HF-DM-RO-CRT-E-0012"
        assert doc.doc_type == "CRT"


def test_generated_numbers_follow_project_and_type(app, actor):
    schedule = {"functional": "FD", "doc_type": "FDS"}
    with session_scope(app) as s:
        a = create_document(s, actor, project="prj002", content=DocumentContent("s.xlsx", 1), **schedule)
        b = create_document(s, actor, project="PRJ002", content=DocumentContent("t.xlsx", 1), **schedule)
        c = create_document(s, actor, project="PRJ002", content=DocumentContent(file_name="roof.dwg", file_size=1))
        assert (a.doc_number, b.doc_number) == ("PRJ002-HF-FD-ZZ-FDS-S-0001", "PRJ002-HF-FD-ZZ-FDS-S-0002")
        assert (c.doc_number, c.doc_type) == ("PRJ002-HF-GN-ZZ-DWG-S-0001", "DWG")


def test_create_document_needs_number_or_project(app, actor):
    with session_scope(app) as s:
        outcome = run_operation(s, create_document, actor, content=DocumentContent(file_name="a.pdf", file_size=1))
    assert outcome.error.kind == "ValidationError"
    assert outcome.error.message == "doc_number or project is required."
