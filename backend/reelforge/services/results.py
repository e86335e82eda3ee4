from __future__ import annotations
"""Explicit success/failure results returned by every pipeline operation."""

import enum
from dataclasses import dataclass, field
from typing import Any

MAX_ERROR_LENGTH = 500


class ErrorKind(str, enum.Enum):
    """Failure taxonomy surfaced to callers."""

    NOT_FOUND = "not_found"
    PRECONDITION_FAILED = "precondition_failed"
    EXTERNAL_FAILURE = "external_failure"


@dataclass
class ActionResult:
    """Outcome of a pipeline operation. Nothing is raised past the service layer."""

    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    kind: ErrorKind | None = None

    @classmethod
    def ok(cls, **data: Any) -> ActionResult:
        return cls(success=True, data=data)

    @classmethod
    def not_found(cls, error: str) -> ActionResult:
        return cls(success=False, error=error, kind=ErrorKind.NOT_FOUND)

    @classmethod
    def precondition(cls, error: str) -> ActionResult:
        return cls(success=False, error=error, kind=ErrorKind.PRECONDITION_FAILED)

    @classmethod
    def external(cls, error: str) -> ActionResult:
        return cls(success=False, error=error, kind=ErrorKind.EXTERNAL_FAILURE)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, **self.data}
        return {"success": False, "error": self.error}


@dataclass
class Completion:
    """A normalised generation callback: success with a result URL, or failure."""

    success: bool
    result_url: str | None = None
    error: str | None = None
    storage_path: str | None = None
    duration_seconds: float | None = None

    @classmethod
    def failed(cls, error: str | None = None) -> Completion:
        return cls(success=False, error=error)

    @classmethod
    def ready(cls, result_url: str, **extra: Any) -> Completion:
        return cls(success=True, result_url=result_url, **extra)


def truncate_error(message: str | None) -> str | None:
    """Clamp an error message to what the record columns are expected to hold."""
    if message is None:
        return None
    return str(message)[:MAX_ERROR_LENGTH]
