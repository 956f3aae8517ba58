"""
KYB draft state
===============
In-memory working copy of one claimant's onboarding submission.

  - OrganizationProfile : one named attribute per profile column
  - UBOEntry            : one beneficial-owner row
  - PendingFile         : an attached, not-yet-uploaded file
  - KYBDraft            : profile + UBO rows + pending files + step state

All operations are synchronous and perform no I/O. Nothing here validates
values; validation lives in app.core.kyb_schema.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from pathlib import PurePath
from typing import Any

from app.core.exceptions import IndexOutOfRange, ValidationError
from app.core.kyb_schema import (
    KYB_DOCUMENT_TYPES,
    STEP_REVIEW,
    UBO_FIELDS,
    FieldViolation,
    humanize_document_type,
    validate,
)
from app.core.step_navigator import StepNavigator


@dataclass
class OrganizationProfile:
    # ── Identity ──────────────────────────────────────────────
    organization_name: str = ""
    legal_name: str = ""
    trading_name: str = ""
    registration_number: str = ""
    tax_identification_number: str = ""
    vat_number: str = ""
    legal_structure: str = ""
    incorporation_date: str = ""        # ISO YYYY-MM-DD
    incorporation_country: str = ""
    incorporation_state: str = ""

    # ── Registered address ───────────────────────────────────
    registered_address_line1: str = ""
    registered_address_line2: str = ""
    registered_city: str = ""
    registered_state: str = ""
    registered_postal_code: str = ""
    registered_country: str = ""

    # ── Operating address ────────────────────────────────────
    operating_address_line1: str = ""
    operating_address_line2: str = ""
    operating_city: str = ""
    operating_state: str = ""
    operating_postal_code: str = ""
    operating_country: str = ""

    # ── Contact ──────────────────────────────────────────────
    phone_number: str = ""
    email: str = ""
    website: str = ""

    # ── Business classification / scale ──────────────────────
    industry_sector: str = ""
    business_description: str = ""
    naics_code: str = ""
    sic_code: str = ""
    annual_revenue: Decimal | None = None
    number_of_employees: int | None = None

    # ── Banking (opaque, no checksum validation) ─────────────
    bank_name: str = ""
    bank_account_number: str = ""
    bank_routing_number: str = ""
    iban: str = ""
    swift_code: str = ""

    # ── Risk flags ───────────────────────────────────────────
    politically_exposed: bool = False
    high_risk_jurisdiction: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any] | None) -> OrganizationProfile:
        """Pre-populate from a persisted organization row; None → defaults."""
        profile = cls()
        if not record:
            return profile
        for name in PROFILE_FIELDS:
            value = record.get(name)
            if value is None:
                continue
            if name == "annual_revenue":
                value = Decimal(str(value))
            elif name == "number_of_employees":
                value = int(value)
            elif name == "incorporation_date" and isinstance(value, date):
                value = value.isoformat()
            setattr(profile, name, value)
        return profile

    def to_record(self) -> dict[str, Any]:
        """Column values for the organizations table (empty date → NULL)."""
        record = {name: getattr(self, name) for name in PROFILE_FIELDS}
        raw_date = record["incorporation_date"]
        if isinstance(raw_date, date):
            record["incorporation_date"] = raw_date
        else:
            record["incorporation_date"] = date.fromisoformat(raw_date) if raw_date else None
        return record


PROFILE_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(OrganizationProfile))


@dataclass
class UBOEntry:
    first_name: str = ""
    last_name: str = ""
    position_title: str = ""
    ownership_percentage: Decimal = Decimal("0")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> UBOEntry:
        return cls(
            first_name=record.get("first_name") or "",
            last_name=record.get("last_name") or "",
            position_title=record.get("position_title") or "",
            ownership_percentage=Decimal(str(record.get("ownership_percentage") or 0)),
        )

    def to_record(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in UBO_FIELDS}


@dataclass
class PendingFile:
    """A file handle attached to the draft, uploaded only at submission."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        suffix = PurePath(self.filename).suffix.lstrip(".")
        return suffix.lower() or "bin"


@dataclass
class KYBDraft:
    profile: OrganizationProfile = field(default_factory=OrganizationProfile)
    ubos: list[UBOEntry] = field(default_factory=list)
    documents: dict[str, PendingFile] = field(default_factory=dict)
    logo: PendingFile | None = None
    existing: dict[str, Any] | None = None
    navigator: StepNavigator = field(default_factory=StepNavigator)
    error: str = ""

    @classmethod
    def initialize(
        cls,
        existing: dict[str, Any] | None = None,
        existing_ubos: list[dict[str, Any]] | None = None,
    ) -> KYBDraft:
        """Start a draft from an existing organization row, or from defaults."""
        return cls(
            profile=OrganizationProfile.from_record(existing),
            ubos=[UBOEntry.from_record(r) for r in (existing_ubos or [])],
            existing=dict(existing) if existing else None,
        )

    # ── Existing record shortcuts ─────────────────────────────

    @property
    def organization_id(self) -> Any | None:
        return self.existing.get("id") if self.existing else None

    @property
    def existing_logo_url(self) -> str | None:
        return self.existing.get("logo_url") if self.existing else None

    # ── Profile fields ────────────────────────────────────────

    def set_field(self, name: str, value: Any) -> None:
        if name not in PROFILE_FIELDS:
            raise ValidationError(
                message=f"Unknown organization field: {name}",
                details={"field": name},
            )
        setattr(self.profile, name, value)

    def update_profile(self, values: dict[str, Any]) -> None:
        for name, value in values.items():
            self.set_field(name, value)

    # ── UBO rows ──────────────────────────────────────────────

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.ubos):
            raise IndexOutOfRange(
                message=f"UBO index {index} is out of range (0..{len(self.ubos) - 1})",
                index=index,
                length=len(self.ubos),
            )

    def add_ubo(self) -> int:
        self.ubos.append(UBOEntry())
        return len(self.ubos) - 1

    def update_ubo(self, index: int, field_name: str, value: Any) -> None:
        self._check_index(index)
        if field_name not in UBO_FIELDS:
            raise ValidationError(
                message=f"Unknown UBO field: {field_name}",
                details={"field": field_name},
            )
        setattr(self.ubos[index], field_name, value)

    def remove_ubo(self, index: int) -> UBOEntry:
        self._check_index(index)
        return self.ubos.pop(index)

    # ── Attachments ───────────────────────────────────────────

    def attach_document(self, document_type: str, file: PendingFile) -> None:
        """Last attachment per document type wins."""
        if document_type not in KYB_DOCUMENT_TYPES:
            raise ValidationError(
                message=f"Unknown document type: {document_type}",
                details={"document_type": document_type},
            )
        self.documents[document_type] = file

    def attach_logo(self, file: PendingFile) -> None:
        self.logo = file

    # ── Navigation ────────────────────────────────────────────

    @property
    def current_step(self) -> int:
        return self.navigator.current_step

    def next_step(self, enforce_ownership_cap: bool = False) -> list[FieldViolation]:
        """Advance only when the current step validates; violations otherwise."""
        violations = validate(self, self.current_step, enforce_ownership_cap)
        if violations:
            self.error = violations[0].message
            return violations
        self.error = ""
        self.navigator.advance()
        return []

    def previous_step(self) -> int:
        self.error = ""
        return self.navigator.retreat()

    # ── Review ────────────────────────────────────────────────

    def review_summary(self) -> dict[str, Any]:
        profile = self.profile
        return {
            "organization_name": profile.organization_name,
            "legal_structure": profile.legal_structure or None,
            "industry_sector": profile.industry_sector or None,
            "ubo_count": len(self.ubos),
            "documents": sorted(humanize_document_type(t) for t in self.documents),
            "logo_attached": self.logo is not None,
            "is_update": self.existing is not None,
            "ready": not validate(self, STEP_REVIEW),
        }

    def to_dict(self) -> dict[str, Any]:
        profile = {
            name: (str(v) if isinstance(v, Decimal) else v)
            for name, v in ((n, getattr(self.profile, n)) for n in PROFILE_FIELDS)
        }
        return {
            "organization_id": str(self.organization_id) if self.organization_id else None,
            "profile": profile,
            "ubos": [
                {**u.to_record(), "ownership_percentage": str(u.ownership_percentage)}
                for u in self.ubos
            ],
            "documents": {
                t: {"filename": f.filename, "size": f.size, "content_type": f.content_type}
                for t, f in self.documents.items()
            },
            "logo": self.logo.filename if self.logo else None,
            "logo_url": self.existing_logo_url,
            "navigator": self.navigator.to_dict(),
            "error": self.error or None,
        }
