"""Error kinds raised by the case engine.

Every engine error derives from ``CaseflowError`` and carries an
``ErrorKind`` plus a ``retryable`` flag. Only ``ConcurrentModification`` and
``StoreUnavailable`` are retryable; the engine itself never retries.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    VALIDATION = "validation_error"
    INVALID_TRANSITION = "invalid_transition"
    NOT_REPORTABLE = "not_reportable"
    NOT_FOUND = "not_found"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    STORE_UNAVAILABLE = "store_unavailable"


class CaseflowError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind
    retryable: bool = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.kind.value,
            "detail": self.message,
            "retryable": self.retryable,
            **({"context": self.details} if self.details else {}),
        }


class ValidationError(CaseflowError):
    """Malformed or missing required input."""

    kind = ErrorKind.VALIDATION


class InvalidTransition(CaseflowError):
    """Operation not legal from the entity's current state."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, entity: str, current: str, target: str | None = None, reason: str = "") -> None:
        if target is None:
            message = f"{entity} in status {current} does not allow this operation"
        else:
            message = f"invalid {entity} transition from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, entity=entity, current=current, target=target)


class NotReportable(CaseflowError):
    """Regulator report requested when the reportability policy forbids it."""

    kind = ErrorKind.NOT_REPORTABLE


class NotFound(CaseflowError):
    """Unknown identifier."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=str(entity_id))


class ConcurrentModification(CaseflowError):
    """Optimistic version check failed; the caller must reload and retry."""

    kind = ErrorKind.CONCURRENT_MODIFICATION
    retryable = True


class StoreUnavailable(CaseflowError):
    """Transient infrastructure failure; the caller may retry with backoff."""

    kind = ErrorKind.STORE_UNAVAILABLE
    retryable = True
