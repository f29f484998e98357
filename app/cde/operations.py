"""
Component boundary between the lifecycle services and whatever serves them.

`run_operation` runs one service call as one transaction: entity read and
validation, entity write and audit write all commit together or not at all.
Service errors come back as values; they are never raised to the caller.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.cde.errors import CdeError, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class OperationError:
    kind: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: OperationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_operation(s: Session, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Outcome[T]:
    name = getattr(fn, "__name__", repr(fn))
    try:
        value = fn(s, *args, **kwargs)
        s.commit()
    except CdeError as e:
        s.rollback()
        if isinstance(e, StorageError):
            logger.error("%s failed: %s", name, e.message)
        else:
            logger.info("%s rejected: %s: %s", name, e.kind, e.message)
        return Outcome(error=OperationError(e.kind, e.message))
    except SQLAlchemyError as e:
        s.rollback()
        logger.exception("%s storage failure", name)
        err = StorageError(f"{e.__class__.__name__}: {e}")
        return Outcome(error=OperationError(err.kind, err.message))
    except Exception:
        s.rollback()
        logger.exception("%s crashed", name)
        raise
    return Outcome(value=value)
