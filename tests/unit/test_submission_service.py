"""
SubmissionOrchestrator unit tests
=================================
Runs the ordered submission writes against in-memory stores (conftest.py).

Covered:
  1. End-to-end scenarios (new profile, update of an approved profile,
     UBO totals over 100% with the cap off and on)
  2. Gating failures (logo upload, organization upsert)
  3. Non-gating failures (UBO write, document upload, document metadata)
  4. Concurrency of document uploads
  5. Strict mode (stop at the first document failure)
"""
from datetime import UTC, datetime
import uuid

import pytest

from app.core.exceptions import SubmissionAborted, ValidationError
from app.services.stores import KYB_DOCUMENTS, ORGANIZATIONS, UBOS
from app.services.submission_service import (
    STAGE_DOCUMENT,
    STAGE_DOCUMENT_METADATA,
    STAGE_DOCUMENT_UPLOAD,
    STAGE_LOGO,
    STAGE_ORGANIZATION,
    STAGE_UBOS,
    SubmissionOrchestrator,
)

CLAIMANT = "user-7f3a"
FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)
FIXED_MS = int(FIXED_NOW.timestamp() * 1000)


def _orchestrator(relational_store, blob_store, clock=lambda: FIXED_NOW, **kwargs):
    kwargs.setdefault("enforce_ownership_cap", False)
    kwargs.setdefault("strict_document_abort", False)
    return SubmissionOrchestrator(
        relational_store,
        blob_store,
        logo_bucket="organization-logos",
        document_bucket="kyb-documents",
        clock=clock,
        **kwargs,
    )


# ══════════════════════════════════════════════════════════════════════════════
# 1. End-to-end scenarios
# ══════════════════════════════════════════════════════════════════════════════
class TestScenarios:

    @pytest.mark.asyncio
    async def test_scenario_a_new_profile(self, relational_store, blob_store, draft_factory):
        """No existing profile, name only → new organization, status pending."""
        result = await _orchestrator(relational_store, blob_store).submit(
            draft_factory("Relief Corp"), claimant_id=CLAIMANT,
        )
        assert result.created is True
        assert result.complete
        rows = relational_store.tables[ORGANIZATIONS]
        assert len(rows) == 1
        assert rows[0]["id"] == result.organization_id
        assert rows[0]["organization_name"] == "Relief Corp"
        assert rows[0]["user_id"] == CLAIMANT
        assert rows[0]["kyb_status"] == "pending"
        assert relational_store.tables[UBOS] == []
        assert relational_store.tables[KYB_DOCUMENTS] == []
        assert blob_store.objects == {}

    @pytest.mark.asyncio
    async def test_scenario_b_update_resets_status(self, relational_store, blob_store, draft_factory):
        """Existing approved profile, changed name → same id, status back to pending."""
        org_id = uuid.uuid4()
        relational_store.tables[ORGANIZATIONS].append({
            "id": org_id,
            "user_id": CLAIMANT,
            "organization_name": "Old Name",
            "kyb_status": "approved",
            "risk_rating": "low",
            "logo_url": "https://blobs.test/public/organization-logos/old.png",
        })
        result = await _orchestrator(relational_store, blob_store).submit(
            draft_factory("New Name"), claimant_id=CLAIMANT,
        )
        assert result.created is False
        assert result.organization_id == org_id
        row = relational_store.tables[ORGANIZATIONS][0]
        assert row["organization_name"] == "New Name"
        assert row["kyb_status"] == "pending"
        # no new logo: the stored one stays
        assert row["logo_url"].endswith("old.png")
        assert result.logo_url.endswith("old.png")

    @pytest.mark.asyncio
    async def test_scenario_c_ownership_over_100_without_cap(self, relational_store, blob_store, draft_factory):
        draft = draft_factory(ubos=[("Ann", "Lee", 60), ("Bo", "Kim", 50)])
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        assert result.complete
        assert result.ubo_count == 2
        assert sorted(r["ownership_percentage"] for r in relational_store.tables[UBOS]) == [50, 60]

    @pytest.mark.asyncio
    async def test_scenario_c_ownership_over_100_with_cap(self, relational_store, blob_store, draft_factory):
        draft = draft_factory(ubos=[("Ann", "Lee", 60), ("Bo", "Kim", 50)])
        orchestrator = _orchestrator(relational_store, blob_store, enforce_ownership_cap=True)
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.submit(draft, claimant_id=CLAIMANT)
        assert exc_info.value.violations[0].field == "ubos"
        assert relational_store.calls == []
        assert draft.error

    @pytest.mark.asyncio
    async def test_double_submission_overwrites(self, relational_store, blob_store, draft_factory, ticking_clock):
        """Two submissions → one profile with the second values, pending both times."""
        orchestrator = _orchestrator(relational_store, blob_store, clock=ticking_clock)
        first = await orchestrator.submit(
            draft_factory("First", ubos=[("A", "A", 10), ("B", "B", 20)]), claimant_id=CLAIMANT,
        )
        relational_store.tables[ORGANIZATIONS][0]["kyb_status"] = "in_review"
        second = await orchestrator.submit(
            draft_factory("Second", ubos=[("C", "C", 30)]), claimant_id=CLAIMANT,
        )
        assert first.created is True and second.created is False
        assert first.organization_id == second.organization_id
        orgs = relational_store.tables[ORGANIZATIONS]
        assert len(orgs) == 1
        assert orgs[0]["organization_name"] == "Second"
        assert orgs[0]["kyb_status"] == "pending"
        # UBO set replaced, not merged
        assert [u["first_name"] for u in relational_store.tables[UBOS]] == ["C"]

    @pytest.mark.asyncio
    async def test_documents_are_append_only(self, relational_store, blob_store, draft_factory, pdf_file, ticking_clock):
        orchestrator = _orchestrator(relational_store, blob_store, clock=ticking_clock)
        for _ in range(2):
            await orchestrator.submit(
                draft_factory(documents={"bank_statement": pdf_file()}), claimant_id=CLAIMANT,
            )
        assert len(relational_store.tables[KYB_DOCUMENTS]) == 2
        assert len(blob_store.paths("kyb-documents")) == 2

    @pytest.mark.asyncio
    async def test_blank_name_fails_before_any_write(self, relational_store, blob_store, draft_factory, png_file):
        draft = draft_factory("  ", logo=png_file())
        with pytest.raises(ValidationError):
            await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        assert relational_store.calls == []
        assert blob_store.objects == {}

    @pytest.mark.asyncio
    async def test_value_wider_than_column_fails_before_any_write(self, relational_store, blob_store, draft_factory):
        draft = draft_factory()
        draft.set_field("naics_code", "54161100-XYZ")
        with pytest.raises(ValidationError) as exc_info:
            await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        assert [v.field for v in exc_info.value.violations] == ["naics_code"]
        assert relational_store.calls == []
        assert "10 characters" in draft.error


# ══════════════════════════════════════════════════════════════════════════════
# 2. Blob paths and records
# ══════════════════════════════════════════════════════════════════════════════
class TestWrites:

    @pytest.mark.asyncio
    async def test_logo_path_and_public_url(self, relational_store, blob_store, draft_factory, png_file):
        result = await _orchestrator(relational_store, blob_store).submit(
            draft_factory(logo=png_file("brand.PNG")), claimant_id=CLAIMANT,
        )
        expected_path = f"{CLAIMANT}/logo-{FIXED_MS}.png"
        assert blob_store.paths("organization-logos") == [expected_path]
        assert result.logo_url == f"https://blobs.test/public/organization-logos/{expected_path}"
        assert relational_store.tables[ORGANIZATIONS][0]["logo_url"] == result.logo_url

    @pytest.mark.asyncio
    async def test_document_paths_and_metadata(self, relational_store, blob_store, draft_factory, pdf_file):
        draft = draft_factory(documents={
            "certificate_of_incorporation": pdf_file("coi.pdf", size=10),
            "proof_of_address": pdf_file("bill.pdf", size=20),
        })
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)

        assert blob_store.paths("kyb-documents") == [
            f"{CLAIMANT}/documents/certificate_of_incorporation-{FIXED_MS}.pdf",
            f"{CLAIMANT}/documents/proof_of_address-{FIXED_MS}.pdf",
        ]
        rows = {r["document_type"]: r for r in relational_store.tables[KYB_DOCUMENTS]}
        assert rows["proof_of_address"]["document_name"] == "bill.pdf"
        assert rows["proof_of_address"]["file_size"] == 20
        assert rows["proof_of_address"]["mime_type"] == "application/pdf"
        assert rows["proof_of_address"]["organization_id"] == result.organization_id
        assert len(result.documents) == 2

    @pytest.mark.asyncio
    async def test_profile_record_columns(self, relational_store, blob_store, draft_factory):
        draft = draft_factory()
        draft.set_field("incorporation_date", "2018-04-09")
        draft.set_field("politically_exposed", True)
        await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        row = relational_store.tables[ORGANIZATIONS][0]
        assert row["incorporation_date"].isoformat() == "2018-04-09"
        assert row["politically_exposed"] is True
        assert "logo_url" not in row

    @pytest.mark.asyncio
    async def test_result_to_dict(self, relational_store, blob_store, draft_factory):
        result = await _orchestrator(relational_store, blob_store).submit(
            draft_factory(), claimant_id=CLAIMANT,
        )
        data = result.to_dict()
        assert data["organization_id"] == str(result.organization_id)
        assert data["status"] == "pending"
        assert data["complete"] is True
        assert data["failures"] == []


# ══════════════════════════════════════════════════════════════════════════════
# 3. Gating failures
# ══════════════════════════════════════════════════════════════════════════════
class TestGatingFailures:

    @pytest.mark.asyncio
    async def test_logo_failure_aborts_everything(self, relational_store, blob_store, draft_factory, png_file, pdf_file):
        blob_store.fail_buckets.add("organization-logos")
        draft = draft_factory(
            ubos=[("A", "A", 10)], documents={"bank_statement": pdf_file()}, logo=png_file(),
        )
        with pytest.raises(SubmissionAborted) as exc_info:
            await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)

        err = exc_info.value
        assert err.stage == STAGE_LOGO
        assert err.cause.kind == "UploadError"
        assert relational_store.calls == []
        assert blob_store.paths("kyb-documents") == []
        # draft kept intact for a retry
        assert draft.logo is not None
        assert len(draft.ubos) == 1
        assert draft.error.startswith("Logo upload failed")

    @pytest.mark.asyncio
    async def test_organization_failure_aborts_children(self, relational_store, blob_store, draft_factory, pdf_file):
        relational_store.fail_on[(ORGANIZATIONS, "upsert")] = "check constraint"
        draft = draft_factory(ubos=[("A", "A", 10)], documents={"bank_statement": pdf_file()})
        with pytest.raises(SubmissionAborted) as exc_info:
            await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)

        assert exc_info.value.stage == STAGE_ORGANIZATION
        assert exc_info.value.to_dict()["cause"]["kind"] == "PersistenceError"
        assert ("replace", UBOS) not in relational_store.calls
        assert blob_store.objects == {}

    @pytest.mark.asyncio
    async def test_organization_lookup_failure_aborts(self, relational_store, blob_store, draft_factory):
        relational_store.fail_on[(ORGANIZATIONS, "select")] = "connection refused"
        with pytest.raises(SubmissionAborted) as exc_info:
            await _orchestrator(relational_store, blob_store).submit(draft_factory(), claimant_id=CLAIMANT)
        assert exc_info.value.stage == STAGE_ORGANIZATION


# ══════════════════════════════════════════════════════════════════════════════
# 4. Non-gating failures (accumulate and continue)
# ══════════════════════════════════════════════════════════════════════════════
class TestPartialFailures:

    @pytest.mark.asyncio
    async def test_one_document_upload_fails_others_persist(self, relational_store, blob_store, draft_factory, pdf_file):
        blob_store.fail_paths.add("proof_of_address")
        draft = draft_factory(
            ubos=[("A", "A", 25)],
            documents={
                "certificate_of_incorporation": pdf_file(),
                "proof_of_address": pdf_file(),
                "tax_registration": pdf_file(),
            },
        )
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)

        assert not result.complete
        assert [(f.stage, f.document_type, f.kind) for f in result.failures] == [
            (STAGE_DOCUMENT_UPLOAD, "proof_of_address", "UploadError"),
        ]
        stored_types = sorted(r["document_type"] for r in relational_store.tables[KYB_DOCUMENTS])
        assert stored_types == ["certificate_of_incorporation", "tax_registration"]
        assert len(relational_store.tables[ORGANIZATIONS]) == 1
        assert result.ubo_count == 1
        assert len(relational_store.tables[UBOS]) == 1

    @pytest.mark.asyncio
    async def test_every_document_failure_is_reported(self, relational_store, blob_store, draft_factory, pdf_file):
        blob_store.fail_buckets.add("kyb-documents")
        draft = draft_factory(documents={"bank_statement": pdf_file(), "board_resolution": pdf_file()})
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        assert sorted(f.document_type for f in result.failures) == ["bank_statement", "board_resolution"]
        assert result.documents == []

    @pytest.mark.asyncio
    async def test_metadata_insert_failure_is_reported(self, relational_store, blob_store, draft_factory, pdf_file):
        relational_store.fail_on[(KYB_DOCUMENTS, "insert")] = "fk violation"
        draft = draft_factory(documents={"bank_statement": pdf_file()})
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        assert result.failures[0].stage == STAGE_DOCUMENT_METADATA
        assert result.failures[0].message == "fk violation"
        # blob already written, nothing rolled back
        assert len(blob_store.paths("kyb-documents")) == 1

    @pytest.mark.asyncio
    async def test_ubo_failure_keeps_organization_and_documents(self, relational_store, blob_store, draft_factory, pdf_file):
        relational_store.fail_on[(UBOS, "replace")] = "check constraint"
        draft = draft_factory(ubos=[("A", "A", 10)], documents={"bank_statement": pdf_file()})
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)

        assert [f.stage for f in result.failures] == [STAGE_UBOS]
        assert result.ubo_count == 0
        assert relational_store.tables[ORGANIZATIONS][0]["kyb_status"] == "pending"
        assert len(relational_store.tables[KYB_DOCUMENTS]) == 1

    @pytest.mark.asyncio
    async def test_success_clears_draft_error(self, relational_store, blob_store, draft_factory):
        draft = draft_factory()
        draft.error = "previous attempt failed"
        await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        assert draft.error == ""

    @pytest.mark.asyncio
    async def test_zero_ubos_skips_ubo_write(self, relational_store, blob_store, draft_factory):
        await _orchestrator(relational_store, blob_store).submit(draft_factory(), claimant_id=CLAIMANT)
        assert ("replace", UBOS) not in relational_store.calls

    @pytest.mark.asyncio
    async def test_resubmit_without_ubos_keeps_prior_rows(self, relational_store, blob_store, draft_factory):
        """An empty UBO list means no UBO write, so an earlier set stays in place."""
        orchestrator = _orchestrator(relational_store, blob_store)
        first = await orchestrator.submit(draft_factory(ubos=[("Ann", "Lee", 40)]), claimant_id=CLAIMANT)
        second = await orchestrator.submit(draft_factory(), claimant_id=CLAIMANT)
        assert second.ubo_count == 0
        assert second.complete
        rows = relational_store.tables[UBOS]
        assert [(r["first_name"], r["organization_id"]) for r in rows] == [("Ann", first.organization_id)]


# ══════════════════════════════════════════════════════════════════════════════
# 5. Concurrency
# ══════════════════════════════════════════════════════════════════════════════
class TestConcurrency:

    @pytest.mark.asyncio
    async def test_document_uploads_overlap(self, relational_store, blob_store, draft_factory, pdf_file):
        draft = draft_factory(documents={
            "certificate_of_incorporation": pdf_file(),
            "proof_of_address": pdf_file(),
            "bank_statement": pdf_file(),
            "tax_registration": pdf_file(),
        })
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)
        assert blob_store.max_in_flight > 1
        # every upload awaited before the result is returned
        assert len(result.documents) == 4
        assert len(relational_store.tables[KYB_DOCUMENTS]) == 4

    @pytest.mark.asyncio
    async def test_unexpected_error_waits_for_other_documents(self, relational_store, blob_store, draft_factory, pdf_file):
        blob_store.delay = 0.05
        upload = blob_store.upload

        async def crashing_upload(bucket, path, content, content_type="application/octet-stream"):
            if "bank_statement" in path:
                raise RuntimeError("stream closed")
            return await upload(bucket, path, content, content_type)

        blob_store.upload = crashing_upload
        draft = draft_factory(documents={
            "bank_statement": pdf_file(),
            "proof_of_address": pdf_file(),
            "tax_registration": pdf_file(),
        })
        result = await _orchestrator(relational_store, blob_store).submit(draft, claimant_id=CLAIMANT)

        # the other writes finished before submit returned
        assert len(relational_store.tables[KYB_DOCUMENTS]) == 2
        assert sorted(d["document_type"] for d in result.documents) == ["proof_of_address", "tax_registration"]
        assert [f.to_dict() for f in result.failures] == [{
            "stage": STAGE_DOCUMENT,
            "kind": "RuntimeError",
            "message": "stream closed",
            "document_type": "bank_statement",
        }]
        assert not result.complete
        assert draft.error == ""


# ══════════════════════════════════════════════════════════════════════════════
# 6. Strict mode (eager abort on the first document failure)
# ══════════════════════════════════════════════════════════════════════════════
class TestStrictMode:

    @pytest.mark.asyncio
    async def test_stops_at_first_document_failure(self, relational_store, blob_store, draft_factory, pdf_file):
        blob_store.fail_paths.add("proof_of_address")
        draft = draft_factory(documents={
            "certificate_of_incorporation": pdf_file(),
            "proof_of_address": pdf_file(),
            "tax_registration": pdf_file(),
        })
        orchestrator = _orchestrator(relational_store, blob_store, strict_document_abort=True)
        result = await orchestrator.submit(draft, claimant_id=CLAIMANT)

        assert [d["document_type"] for d in result.documents] == ["certificate_of_incorporation"]
        assert [f.document_type for f in result.failures] == ["proof_of_address"]
        assert result.skipped_documents == ["tax_registration"]
        assert blob_store.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_ubo_failure_skips_documents(self, relational_store, blob_store, draft_factory, pdf_file):
        relational_store.fail_on[(UBOS, "replace")] = "boom"
        draft = draft_factory(ubos=[("A", "A", 10)], documents={"bank_statement": pdf_file()})
        orchestrator = _orchestrator(relational_store, blob_store, strict_document_abort=True)
        result = await orchestrator.submit(draft, claimant_id=CLAIMANT)
        assert result.skipped_documents == ["bank_statement"]
        assert blob_store.objects == {}
        assert result.to_dict()["complete"] is False
