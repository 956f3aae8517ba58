"""
KYB form schema
===============
Onboarding steps, closed catalogs and per-step validation.

Steps (7):
  1. Basic Information          - names, identifiers, legal structure
  2. Contact & Address          - registered / operating address, contact
  3. Business Details           - sector, codes, scale, risk flags
  4. Banking Information        - account details (opaque strings)
  5. Ultimate Beneficial Owners - UBO rows
  6. Documents Upload           - one pending file per document type
  7. Review & Submit            - re-checks everything before submission

The only hard-required field in the whole workflow is organization_name.
Everything else is optional so that partially filled drafts stay valid.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from sqlalchemy import String

from app.core.exceptions import ValidationError
from app.db.schemas import KYBDocument, Organization, UltimateBeneficialOwner

if TYPE_CHECKING:
    from app.core.draft import KYBDraft, UBOEntry


@dataclass(frozen=True)
class FormStep:
    id: int
    title: str
    description: str


FORM_STEPS: tuple[FormStep, ...] = (
    FormStep(1, "Basic Information", "Organization details and structure"),
    FormStep(2, "Contact & Address", "Registered and operating addresses"),
    FormStep(3, "Business Details", "Industry, revenue, and operations"),
    FormStep(4, "Banking Information", "Financial account details"),
    FormStep(5, "Ultimate Beneficial Owners", "UBO information and ownership"),
    FormStep(6, "Documents Upload", "Required verification documents"),
    FormStep(7, "Review & Submit", "Final review and submission"),
)

STEP_BASIC_INFO = 1
STEP_CONTACT = 2
STEP_BUSINESS = 3
STEP_BANKING = 4
STEP_UBOS = 5
STEP_DOCUMENTS = 6
STEP_REVIEW = 7

TOTAL_STEPS = len(FORM_STEPS)


# ── Catalogs (stable key → label) ──────────────────────────────

LEGAL_STRUCTURES: dict[str, str] = {
    "sole_proprietorship": "Sole Proprietorship",
    "partnership": "Partnership",
    "llc": "Limited Liability Company (LLC)",
    "corporation": "Corporation",
    "s_corporation": "S Corporation",
    "nonprofit": "Non-Profit Organization",
    "charitable_trust": "Charitable Trust",
    "foundation": "Foundation",
    "cooperative": "Cooperative",
    "government_entity": "Government Entity",
    "other": "Other",
}

INDUSTRY_SECTORS: dict[str, str] = {
    "disaster_relief": "Disaster Relief",
    "humanitarian_aid": "Humanitarian Aid",
    "healthcare": "Healthcare",
    "education": "Education",
    "housing": "Housing & Shelter",
    "food_security": "Food Security",
    "environment": "Environment & Conservation",
    "community_development": "Community Development",
    "religious": "Religious Organization",
    "technology": "Technology",
    "financial_services": "Financial Services",
    "other": "Other",
}

KYB_DOCUMENT_TYPES: dict[str, str] = {
    "certificate_of_incorporation": "Certificate of Incorporation",
    "articles_of_association": "Articles of Association",
    "proof_of_address": "Proof of Address",
    "tax_registration": "Tax Registration Certificate",
    "bank_statement": "Bank Statement",
    "ubo_identification": "UBO Identification",
    "shareholder_register": "Shareholder Register",
    "board_resolution": "Board Resolution",
    "financial_statements": "Financial Statements",
    "charity_registration": "Charity Registration Certificate",
}

# ── Data-driven field lists per step ──────────────────────────

STEP_FIELDS: dict[int, tuple[str, ...]] = {
    STEP_BASIC_INFO: (
        "organization_name", "legal_name", "trading_name", "legal_structure",
        "registration_number", "tax_identification_number", "vat_number",
        "incorporation_date", "incorporation_country", "incorporation_state",
    ),
    STEP_CONTACT: (
        "registered_address_line1", "registered_address_line2", "registered_city",
        "registered_state", "registered_postal_code", "registered_country",
        "operating_address_line1", "operating_address_line2", "operating_city",
        "operating_state", "operating_postal_code", "operating_country",
        "phone_number", "email", "website",
    ),
    STEP_BUSINESS: (
        "industry_sector", "naics_code", "sic_code", "annual_revenue",
        "number_of_employees", "business_description",
        "politically_exposed", "high_risk_jurisdiction",
    ),
    STEP_BANKING: (
        "bank_name", "bank_account_number", "bank_routing_number",
        "swift_code", "iban",
    ),
    STEP_UBOS: ("ubos",),
    STEP_DOCUMENTS: ("documents",),
    STEP_REVIEW: (),
}

REQUIRED_FIELDS: frozenset[str] = frozenset({"organization_name"})

UBO_FIELDS: tuple[str, ...] = (
    "first_name", "last_name", "position_title", "ownership_percentage",
)

OWNERSHIP_CAP = Decimal("100")


@dataclass(frozen=True)
class FieldViolation:
    """A single field-level validation failure."""
    field: str
    message: str
    step: int

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.message, "step": self.step}


def get_step(step: int) -> FormStep:
    if not 1 <= step <= TOTAL_STEPS:
        raise ValidationError(
            message=f"Unknown onboarding step: {step}",
            details={"step": step, "total_steps": TOTAL_STEPS},
        )
    return FORM_STEPS[step - 1]


def step_for_field(name: str) -> int | None:
    for step, fields in STEP_FIELDS.items():
        if name in fields:
            return step
    return None


def humanize_document_type(document_type: str) -> str:
    return KYB_DOCUMENT_TYPES.get(
        document_type, document_type.replace("_", " ").title()
    )


# ── Validation ────────────────────────────────────────────────

def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None


def _check_basic_info(draft: KYBDraft) -> list[FieldViolation]:
    profile = draft.profile
    violations = []
    if not (profile.organization_name or "").strip():
        violations.append(FieldViolation(
            "organization_name", "Organization name is required", STEP_BASIC_INFO,
        ))
    if profile.legal_structure and profile.legal_structure not in LEGAL_STRUCTURES:
        violations.append(FieldViolation(
            "legal_structure",
            f"Unknown legal structure: {profile.legal_structure}",
            STEP_BASIC_INFO,
        ))
    if profile.incorporation_date and _to_date(profile.incorporation_date) is None:
        violations.append(FieldViolation(
            "incorporation_date", "Incorporation date must be an ISO date (YYYY-MM-DD)", STEP_BASIC_INFO,
        ))
    return violations


def _check_business(draft: KYBDraft) -> list[FieldViolation]:
    profile = draft.profile
    violations = []
    if profile.industry_sector and profile.industry_sector not in INDUSTRY_SECTORS:
        violations.append(FieldViolation(
            "industry_sector",
            f"Unknown industry sector: {profile.industry_sector}",
            STEP_BUSINESS,
        ))
    if profile.annual_revenue is not None:
        revenue = _to_decimal(profile.annual_revenue)
        if revenue is None or revenue < 0:
            violations.append(FieldViolation(
                "annual_revenue", "Annual revenue must be a non-negative amount", STEP_BUSINESS,
            ))
    employees = profile.number_of_employees
    if employees is not None and (not isinstance(employees, int) or employees < 0):
        violations.append(FieldViolation(
            "number_of_employees", "Number of employees must be a non-negative integer", STEP_BUSINESS,
        ))
    return violations


def _check_ubos(draft: KYBDraft) -> list[FieldViolation]:
    violations = []
    for index, ubo in enumerate(draft.ubos):
        pct = _to_decimal(ubo.ownership_percentage)
        if pct is None or not (0 <= pct <= OWNERSHIP_CAP):
            violations.append(FieldViolation(
                f"ubos[{index}].ownership_percentage",
                "Ownership percentage must be between 0 and 100",
                STEP_UBOS,
            ))
    return violations


def _check_documents(draft: KYBDraft) -> list[FieldViolation]:
    return [
        FieldViolation(f"documents.{doc_type}", f"Unknown document type: {doc_type}", STEP_DOCUMENTS)
        for doc_type in draft.documents
        if doc_type not in KYB_DOCUMENT_TYPES
    ]


def _column_limits(model) -> dict[str, int]:
    """Max lengths of the bounded string columns of one table."""
    return {
        column.name: column.type.length
        for column in model.__table__.columns
        if isinstance(column.type, String) and column.type.length
    }


PROFILE_LIMITS = _column_limits(Organization)
UBO_LIMITS = _column_limits(UltimateBeneficialOwner)
DOCUMENT_LIMITS = _column_limits(KYBDocument)


def _too_long(field_name: str, value: Any, limit: int | None, step: int) -> FieldViolation | None:
    if limit is None or not isinstance(value, str) or len(value) <= limit:
        return None
    return FieldViolation(field_name, f"Must be at most {limit} characters", step)


def _check_lengths(draft: KYBDraft, step: int) -> list[FieldViolation]:
    if step == STEP_UBOS:
        found = (
            _too_long(f"ubos[{index}].{name}", getattr(ubo, name), UBO_LIMITS.get(name), step)
            for index, ubo in enumerate(draft.ubos)
            for name in UBO_FIELDS
        )
    elif step == STEP_DOCUMENTS:
        found = (
            v
            for doc_type, file in draft.documents.items()
            for v in (
                _too_long(f"documents.{doc_type}.filename", file.filename,
                          DOCUMENT_LIMITS.get("document_name"), step),
                _too_long(f"documents.{doc_type}.content_type", file.content_type,
                          DOCUMENT_LIMITS.get("mime_type"), step),
            )
        )
    else:
        found = (
            _too_long(name, getattr(draft.profile, name, None), PROFILE_LIMITS.get(name), step)
            for name in STEP_FIELDS.get(step, ())
        )
    return [v for v in found if v is not None]


_STEP_CHECKS = {
    STEP_BASIC_INFO: _check_basic_info,
    STEP_BUSINESS: _check_business,
    STEP_UBOS: _check_ubos,
    STEP_DOCUMENTS: _check_documents,
}


def validate_ubo_ownership_total(ubos: list[UBOEntry]) -> list[FieldViolation]:
    """Optional stricter rule: declared ownership must not exceed 100% in total."""
    total = sum(
        (_to_decimal(u.ownership_percentage) or Decimal("0") for u in ubos),
        Decimal("0"),
    )
    if total > OWNERSHIP_CAP:
        return [FieldViolation(
            "ubos", f"Total UBO ownership is {total}%, which exceeds 100%", STEP_UBOS,
        )]
    return []


def validate(
    draft: KYBDraft,
    step: int,
    enforce_ownership_cap: bool = False,
) -> list[FieldViolation]:
    """
    Field-level violations for one step. Pure: the draft is not touched.

    The review step re-runs every step's checks.
    """
    get_step(step)
    steps = range(1, TOTAL_STEPS) if step == STEP_REVIEW else (step,)

    violations: list[FieldViolation] = []
    for s in steps:
        check = _STEP_CHECKS.get(s)
        if check is not None:
            violations.extend(check(draft))
        violations.extend(_check_lengths(draft, s))
        if s == STEP_UBOS and enforce_ownership_cap:
            violations.extend(validate_ubo_ownership_total(draft.ubos))
    return violations


def raise_for_violations(violations: list[FieldViolation]) -> None:
    if violations:
        raise ValidationError(
            message="; ".join(v.message for v in violations),
            violations=list(violations),
        )


def form_definition() -> dict[str, Any]:
    """Serializable view of the steps and catalogs for clients."""
    return {
        "steps": [
            {
                "id": s.id,
                "title": s.title,
                "description": s.description,
                "fields": list(STEP_FIELDS[s.id]),
            }
            for s in FORM_STEPS
        ],
        "required_fields": sorted(REQUIRED_FIELDS),
        "ubo_fields": list(UBO_FIELDS),
        "legal_structures": LEGAL_STRUCTURES,
        "industry_sectors": INDUSTRY_SECTORS,
        "document_types": KYB_DOCUMENT_TYPES,
    }
