"""
ISO 19650 document numbers and revision file names.

A number has seven dash-separated fields:

    PROJECT-ORIGINATOR-FUNCTIONAL-SPATIAL-TYPE-ROLE-SEQUENCE
    PRJ001-HF-FD-ZZ-FRA-S-0001

Every field is alphanumeric; the sequence is numeric and is written with at
least four digits. Revision files are named `<number>_Rev<label>.<ext>`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from app.cde.constants import DOC_TYPES
from app.cde.errors import ValidationError
from app.cde.utils import normalize_text

DEFAULT_ORIGINATOR = "HF"
DEFAULT_SPATIAL = "ZZ"
DEFAULT_ROLE = "S"
SEQUENCE_WIDTH = 4

_FIELD = r"[A-Z0-9]+"
DOC_NUMBER_RE = re.compile(rf"({_FIELD})-({_FIELD})-({_FIELD})-({_FIELD})-({_FIELD})-({_FIELD})-(\d+)")

# File extension -> type code, for names that carry no type code.
_TYPE_BY_EXTENSION = {
    "pdf": "RPT",
    "dwg": "DWG",
    "dxf": "DWG",
    "jpg": "PHO",
    "jpeg": "PHO",
    "png": "PHO",
}


@dataclass(frozen=True)
class DocNumber:
    project: str
    originator: str
    functional: str
    spatial: str
    doc_type: str
    role: str
    sequence: int

    def __str__(self) -> str:
        return generate_doc_number(
            self.project,
            self.functional,
            self.doc_type,
            self.sequence,
            originator=self.originator,
            spatial=self.spatial,
            role=self.role,
        )


def parse_doc_number(value: str) -> DocNumber:
    """Parse a document number; raises ValidationError when it is not in ISO 19650 form."""
    raw = normalize_text(value).upper()
    m = DOC_NUMBER_RE.fullmatch(raw)
    if m is None:
        raise ValidationError(
            f"Invalid document number {value!r}. Expected PROJECT-ORIGINATOR-FUNCTIONAL-SPATIAL-TYPE-ROLE-SEQUENCE."
        )
    project, originator, functional, spatial, doc_type, role, seq = m.groups()
    return DocNumber(project, originator, functional, spatial, doc_type, role, int(seq))


def generate_doc_number(
    project: str,
    functional: str,
    doc_type: str,
    sequence: int,
    *,
    originator: str = DEFAULT_ORIGINATOR,
    spatial: str = DEFAULT_SPATIAL,
    role: str = DEFAULT_ROLE,
) -> str:
    if sequence < 1:
        raise ValidationError("Document sequence must be positive.")
    fields = [normalize_text(f).upper() for f in (project, originator, functional, spatial, doc_type, role)]
    for f in fields:
        if not re.fullmatch(_FIELD, f):
            raise ValidationError(f"Invalid document number field {f!r}.")
    return "-".join(fields + [str(sequence).zfill(SEQUENCE_WIDTH)])


def file_extension(file_name: str | None) -> str:
    base = (file_name or "").rsplit("/", 1)[-1]
    if "." not in base:
        return ""
    return base.rsplit(".", 1)[-1].lower()


def build_file_name(doc_number: str, revision: str, extension: str) -> str:
    """`PRJ001-HF-FD-ZZ-FRA-S-0001`, `B`, `pdf` -> `PRJ001-HF-FD-ZZ-FRA-S-0001_RevB.pdf`."""
    ext = extension.lstrip(".")
    name = f"{doc_number}_Rev{revision}"
    return f"{name}.{ext}" if ext else name


def guess_doc_type(file_name: str) -> str | None:
    """
    Best-effort type code for a file whose name may not be an ISO number:
    a type code anywhere in the name wins, then the extension.
    """
    upper = (file_name or "").upper()
    for code in DOC_TYPES:
        if code in upper:
            return code
    return _TYPE_BY_EXTENSION.get(file_extension(file_name))
