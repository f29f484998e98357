"""
Error kinds raised by the lifecycle services.

Services raise these; `app.cde.operations.run_operation` turns them into
structured `OperationError` values so nothing is thrown across the
component boundary. `kind` is the stable, caller-facing name.
"""
from __future__ import annotations


class CdeError(Exception):
    kind = "Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class NotFound(CdeError):
    """Missing row, or a row owned by another tenant (indistinguishable on purpose)."""

    kind = "NotFound"

    def __init__(self, entity_type: str, entity_id: object) -> None:
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(CdeError):
    kind = "ValidationError"


class InvalidStatus(CdeError):
    kind = "InvalidStatus"

    def __init__(self, entity_kind: str, status: object, allowed) -> None:
        super().__init__(f"Invalid {entity_kind} status {status!r}. Must be one of: {', '.join(allowed)}")
        self.status = status


class InvalidTransition(CdeError):
    kind = "InvalidTransition"

    def __init__(self, current: str, requested: str, allowed=()) -> None:
        msg = f"Cannot transition from {current} to {requested}"
        if allowed:
            msg += f". Allowed: {', '.join(allowed)}"
        super().__init__(msg)
        self.current = current
        self.requested = requested


class EntityClosed(CdeError):
    kind = "EntityClosed"


class StepNotCurrent(CdeError):
    kind = "StepNotCurrent"

    def __init__(self, requested: int, current: int) -> None:
        super().__init__(f"Step {requested} is not the current step (current: {current})")
        self.requested = requested
        self.current = current


class WorkflowAlreadyComplete(CdeError):
    kind = "WorkflowAlreadyComplete"


class TokenInvalid(CdeError):
    kind = "TokenInvalid"

    def __init__(self) -> None:
        super().__init__("Invalid or expired portal link")


class StorageError(CdeError):
    """Persistence failure surfaced unmodified; the core never retries these."""

    kind = "StorageError"


class ConcurrentUpdate(StorageError):
    """Optimistic compare-and-increment kept losing to concurrent writers."""


class ImmutableRecord(StorageError):
    """Attempt to update or delete an append-only audit row."""
