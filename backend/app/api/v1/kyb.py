"""
KYB onboarding API
==================
Seven-step organization onboarding for an authenticated claimant:
  1. GET  /form            - step list, field lists and catalogs
  2. GET  /draft           - draft pre-filled from the claimant's existing record
  3. POST /validate/{step} - step validation + gated advance (JSON draft)
  4. POST /submit          - final submission (multipart: payload JSON,
                             optional logo, document_<type> files)
  5. GET  /status          - verification status badges

Error mapping:
  ValidationError   → 422
  IndexOutOfRange   → 400
  SubmissionAborted → 502
  PersistenceError  → 503 (reads)
Partial failures after the organization write are returned with 200 and a
non-empty "failures" list.
"""
from decimal import Decimal
import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PayloadError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile as StarletteUploadFile

from app.config import settings
from app.core.auth import CurrentUser, get_current_user
from app.core.draft import KYBDraft, PendingFile
from app.core.exceptions import (
    IndexOutOfRange,
    KYBError,
    PersistenceError,
    SubmissionAborted,
    ValidationError,
)
from app.core.kyb_schema import form_definition, get_step
from app.core.status_projection import project_organization
from app.core.step_navigator import StepNavigator
from app.db.session import get_db
from app.services.blob_store import get_blob_store
from app.services.sql_store import SqlRelationalStore
from app.services.stores import ORGANIZATIONS, UBOS, BlobStore, RelationalStore
from app.services.submission_service import SubmissionOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)

DOCUMENT_FIELD_PREFIX = "document_"
DASHBOARD_REDIRECT = "/dashboard"

_ERROR_STATUS: dict[type[KYBError], int] = {
    ValidationError: 422,
    IndexOutOfRange: 400,
    SubmissionAborted: 502,
    PersistenceError: 503,
}


def http_error(err: KYBError) -> HTTPException:
    status_code = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(err, cls)),
        500,
    )
    return HTTPException(status_code=status_code, detail=err.to_dict())


# ── Request models ──────────────────────────────────────────────

class ProfilePayload(BaseModel):
    """Organization profile columns. Unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")

    # 1. Basic information
    organization_name: str = ""
    legal_name: str = ""
    trading_name: str = ""
    registration_number: str = ""
    tax_identification_number: str = ""
    vat_number: str = ""
    legal_structure: str = ""
    incorporation_date: str = Field("", description="YYYY-MM-DD")
    incorporation_country: str = ""
    incorporation_state: str = ""

    # 2. Contact & address
    registered_address_line1: str = ""
    registered_address_line2: str = ""
    registered_city: str = ""
    registered_state: str = ""
    registered_postal_code: str = ""
    registered_country: str = ""
    operating_address_line1: str = ""
    operating_address_line2: str = ""
    operating_city: str = ""
    operating_state: str = ""
    operating_postal_code: str = ""
    operating_country: str = ""
    phone_number: str = ""
    email: str = ""
    website: str = ""

    # 3. Business details
    industry_sector: str = ""
    business_description: str = ""
    naics_code: str = ""
    sic_code: str = ""
    annual_revenue: Decimal | None = None
    number_of_employees: int | None = None
    politically_exposed: bool = False
    high_risk_jurisdiction: bool = False

    # 4. Banking
    bank_name: str = ""
    bank_account_number: str = ""
    bank_routing_number: str = ""
    iban: str = ""
    swift_code: str = ""


class UBOPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    first_name: str = ""
    last_name: str = ""
    position_title: str = ""
    ownership_percentage: Decimal = Decimal("0")


class DraftPayload(BaseModel):
    profile: ProfilePayload = Field(default_factory=ProfilePayload)
    ubos: list[UBOPayload] = Field(default_factory=list)


# ── Helpers ─────────────────────────────────────────────────────

async def _load_existing(store: RelationalStore, claimant_id: str) -> dict[str, Any] | None:
    rows = await store.select(ORGANIZATIONS, {"user_id": claimant_id}, limit=1)
    return rows[0] if rows else None


def _build_draft(payload: DraftPayload, existing: dict[str, Any] | None = None) -> KYBDraft:
    """The submitted payload fully replaces profile and UBO list."""
    draft = KYBDraft.initialize(existing)
    draft.update_profile(payload.profile.model_dump())
    for ubo in payload.ubos:
        index = draft.add_ubo()
        for field_name, value in ubo.model_dump().items():
            draft.update_ubo(index, field_name, value)
    return draft


async def _read_upload(upload: StarletteUploadFile) -> PendingFile:
    content = await upload.read()
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"{upload.filename} exceeds the {settings.MAX_UPLOAD_BYTES} byte upload limit.",
        )
    return PendingFile(
        filename=upload.filename or "upload",
        content=content,
        content_type=upload.content_type or "application/octet-stream",
    )


def _parse_payload(raw: str) -> DraftPayload:
    try:
        return DraftPayload.model_validate_json(raw)
    except PayloadError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False)) from e


# ── Handlers ────────────────────────────────────────────────────

@router.get("/form")
async def get_form():
    """Step titles, per-step field lists and the closed catalogs."""
    return form_definition()


@router.get("/draft")
async def get_draft(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Draft initialized from the claimant's organization row (defaults if none)."""
    store = SqlRelationalStore(db)
    try:
        existing = await _load_existing(store, user.id)
        ubos = await store.select(UBOS, {"organization_id": existing["id"]}) if existing else []
    except PersistenceError as e:
        raise http_error(e) from e

    draft = KYBDraft.initialize(existing, ubos)
    return {
        **draft.to_dict(),
        "progress": draft.navigator.progress(),
        "review": draft.review_summary(),
    }


@router.post("/validate/{step}")
async def validate_step(step: int, payload: DraftPayload):
    """
    Validate the posted draft at one step and try to advance.
    The navigator only moves when the step has no violations.
    """
    try:
        get_step(step)
        draft = _build_draft(payload)
    except KYBError as e:
        raise http_error(e) from e

    draft.navigator = StepNavigator(current_step=step)
    violations = draft.next_step(settings.ENFORCE_UBO_OWNERSHIP_CAP)
    return {
        "step": step,
        "valid": not violations,
        "violations": [v.to_dict() for v in violations],
        "error": draft.error or None,
        "navigator": draft.navigator.to_dict(),
        "progress": draft.navigator.progress(),
    }


@router.post("/submit")
async def submit_kyb(
    request: Request,
    payload: str = Form(..., description="JSON: {profile: {...}, ubos: [...]}"),
    logo: UploadFile | None = File(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """
    Final submission.
    Document files are sent as form fields named document_<type>,
    e.g. document_certificate_of_incorporation.
    """
    draft_payload = _parse_payload(payload)
    store = SqlRelationalStore(db)

    try:
        existing = await _load_existing(store, user.id)
        draft = _build_draft(draft_payload, existing)

        if logo is not None and logo.filename:
            draft.attach_logo(await _read_upload(logo))

        form = await request.form()
        for key, value in form.multi_items():
            if not key.startswith(DOCUMENT_FIELD_PREFIX) or not isinstance(value, StarletteUploadFile):
                continue
            if not value.filename:
                continue
            draft.attach_document(key[len(DOCUMENT_FIELD_PREFIX):], await _read_upload(value))

        orchestrator = SubmissionOrchestrator(
            store,
            blob_store,
            logo_bucket=settings.LOGO_BUCKET,
            document_bucket=settings.DOCUMENT_BUCKET,
            enforce_ownership_cap=settings.ENFORCE_UBO_OWNERSHIP_CAP,
            strict_document_abort=settings.STRICT_DOCUMENT_ABORT,
        )
        result = await orchestrator.submit(draft, claimant_id=user.id)
    except KYBError as e:
        logger.warning(f"KYB submission rejected: claimant={user.id}, {e}")
        raise http_error(e) from e

    return {**result.to_dict(), "redirect": DASHBOARD_REDIRECT}


@router.get("/status")
async def get_status(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Verification and risk badges for the claimant's organization."""
    try:
        organization = await _load_existing(SqlRelationalStore(db), user.id)
    except PersistenceError as e:
        raise http_error(e) from e

    return {
        "submitted": organization is not None,
        "organization_id": str(organization["id"]) if organization else None,
        **project_organization(organization),
    }
