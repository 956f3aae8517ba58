"""
Verification status projection.

Read-side mapping from a persisted organization row to display badges.
Total over its input: a missing or unrecognised value maps to UNKNOWN.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

KYB_STATUSES = ("pending", "in_review", "approved", "rejected")
RISK_RATINGS = ("low", "medium", "high")

_STATUS_CLASSES: dict[str, str] = {
    "approved": "badge-success",
    "pending": "badge-warning",
    "in_review": "badge-info",
    "rejected": "badge-danger",
}

_RISK_CLASSES: dict[str, str] = {
    "low": "badge-success",
    "medium": "badge-warning",
    "high": "badge-danger",
}

UNKNOWN_LABEL = "UNKNOWN"
UNKNOWN_CLASS = "badge-unknown"


@dataclass(frozen=True)
class StatusBadge:
    value: str | None
    label: str
    css_class: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _get(record: Any, key: str) -> Any:
    if record is None:
        return None
    if isinstance(record, dict):
        return record.get(key)
    return getattr(record, key, None)


def _badge(value: Any, classes: dict[str, str]) -> StatusBadge:
    if isinstance(value, str) and value.lower() in classes:
        key = value.lower()
        return StatusBadge(key, key.upper(), classes[key])
    return StatusBadge(None, UNKNOWN_LABEL, UNKNOWN_CLASS)


def project_status(record: Any) -> StatusBadge:
    return _badge(_get(record, "kyb_status"), _STATUS_CLASSES)


def project_risk(record: Any) -> StatusBadge:
    return _badge(_get(record, "risk_rating"), _RISK_CLASSES)


def project_organization(record: Any) -> dict[str, Any]:
    """Dashboard card for one organization (dict row or ORM object)."""
    status = project_status(record)
    return {
        "organization_name": _get(record, "organization_name"),
        "kyb_status": status.to_dict(),
        "risk_rating": project_risk(record).to_dict(),
        "can_petition": status.value == "approved",
    }
