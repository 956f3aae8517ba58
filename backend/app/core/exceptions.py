"""
KYB Exception Hierarchy
=======================
Every failure the intake workflow can surface carries a machine-readable
code (KYB_*) and a human-readable message.

  ValidationError    - required field missing / value outside a catalog
  IndexOutOfRange    - UBO row access with an invalid index
  UploadError        - blob store rejected or timed out a file write
  PersistenceError   - relational store rejected an upsert/select
  SubmissionAborted  - a gating submission step (logo, profile) failed
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class KYBError(Exception):
    """Base exception for the KYB workflow."""
    message: str
    code: str = "KYB_INTERNAL_ERROR"
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging/API responses."""
        result: dict[str, Any] = {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class ValidationError(KYBError):
    """Draft failed field validation."""
    code: str = "KYB_VALIDATION_ERROR"
    violations: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["violations"] = [v.to_dict() for v in self.violations]
        return result


@dataclass
class IndexOutOfRange(KYBError):
    """UBO index outside the current list bounds."""
    code: str = "KYB_INDEX_OUT_OF_RANGE"
    index: int = -1
    length: int = 0


@dataclass
class UploadError(KYBError):
    """Blob store write failed."""
    code: str = "KYB_UPLOAD_ERROR"
    bucket: str = ""
    path: str = ""


@dataclass
class PersistenceError(KYBError):
    """Relational store operation failed."""
    code: str = "KYB_PERSISTENCE_ERROR"
    table: str = ""


@dataclass
class SubmissionAborted(KYBError):
    """A gating step failed; nothing after it was attempted."""
    code: str = "KYB_SUBMISSION_ABORTED"
    stage: str = ""
    cause: KYBError | None = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["stage"] = self.stage
        if self.cause is not None:
            result["cause"] = self.cause.to_dict()
        return result
