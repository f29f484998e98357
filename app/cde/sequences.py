from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.cde.errors import ConcurrentUpdate
from app.cde.models import SequenceCounter

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10


def next_value(s: Session, *, tenant_id: int, scope: str, key: str) -> int:
    """
    Allocate the next number for (tenant, scope, key), starting at 1.

    Compare-and-swap on the persisted counter row, so concurrent service
    instances never hand out the same value and values are never reused.
    """
    for _attempt in range(MAX_ATTEMPTS):
        current = s.execute(
            select(SequenceCounter.value)
            .where(SequenceCounter.tenant_id == tenant_id)
            .where(SequenceCounter.scope == scope)
            .where(SequenceCounter.key == key)
            .with_for_update()
        ).scalar_one_or_none()

        if current is None:
            try:
                with s.begin_nested():
                    s.add(SequenceCounter(tenant_id=tenant_id, scope=scope, key=key, value=1))
                return 1
            except IntegrityError:
                # another writer created the row first; take the CAS path
                continue

        res = s.execute(
            update(SequenceCounter)
            .where(SequenceCounter.tenant_id == tenant_id)
            .where(SequenceCounter.scope == scope)
            .where(SequenceCounter.key == key)
            .where(SequenceCounter.value == current)
            .values(value=current + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 1:
            return current + 1
        logger.warning("Sequence CAS conflict tenant=%s scope=%s key=%s at=%s", tenant_id, scope, key, current)

    raise ConcurrentUpdate(f"Could not allocate {scope} number for {key} after {MAX_ATTEMPTS} attempts")


def format_number(prefix: str, value: int, width: int = 3) -> str:
    """RFI + 1 -> "RFI-001"; widths grow naturally past 999."""
    return f"{prefix}-{value:0{width}d}"
