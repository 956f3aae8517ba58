"""
SubmissionOrchestrator
======================
Final-step KYB submission: ordered writes against the blob store and the
relational store.

  0. validate the whole draft (review step)     → ValidationError, no writes
  1. upload logo, resolve public URL            → gating (SubmissionAborted)
  2. build organization record, status=pending
  3. upsert organization on user_id             → gating (SubmissionAborted)
  4. replace UBO rows (if any)                  → recorded, not fatal
  5. per document: upload, then insert metadata → recorded, not fatal,
                                                  documents independent

Nothing is rolled back: once step 3 commits, later failures leave a
partially complete submission, and every such failure is returned in
SubmissionResult.failures. Document writes run concurrently and are all
awaited before the result is returned.

With strict_document_abort=True the orchestrator stops at the first
non-gating failure instead (documents then run sequentially).
"""
import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
import logging
from typing import Any

from app.config import settings
from app.core.draft import KYBDraft, PendingFile
from app.core.exceptions import KYBError, PersistenceError, SubmissionAborted, UploadError, ValidationError
from app.core.kyb_schema import STEP_REVIEW, raise_for_violations, validate
from app.services.stores import KYB_DOCUMENTS, ORGANIZATIONS, UBOS, BlobStore, RelationalStore

logger = logging.getLogger(__name__)

STAGE_LOGO = "logo"
STAGE_ORGANIZATION = "organization"
STAGE_UBOS = "ubos"
STAGE_DOCUMENT_UPLOAD = "document_upload"
STAGE_DOCUMENT_METADATA = "document_metadata"
# unexpected error inside one document write
STAGE_DOCUMENT = "document"

INITIAL_STATUS = "pending"


@dataclass
class SubmissionFailure:
    """A non-gating failure recorded during steps 4-5."""
    stage: str
    kind: str
    message: str
    document_type: str | None = None

    @classmethod
    def from_error(cls, stage: str, error: KYBError, document_type: str | None = None):
        return cls(stage=stage, kind=error.kind, message=error.message, document_type=document_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "kind": self.kind,
            "message": self.message,
            "document_type": self.document_type,
        }


@dataclass
class SubmissionResult:
    organization_id: Any
    created: bool
    status: str = INITIAL_STATUS
    logo_url: str | None = None
    ubo_count: int = 0
    documents: list[dict[str, Any]] = field(default_factory=list)
    failures: list[SubmissionFailure] = field(default_factory=list)
    skipped_documents: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures and not self.skipped_documents

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": str(self.organization_id),
            "created": self.created,
            "status": self.status,
            "logo_url": self.logo_url,
            "ubo_count": self.ubo_count,
            "documents": [
                {"document_type": d["document_type"], "file_path": d["file_path"]}
                for d in self.documents
            ],
            "complete": self.complete,
            "failures": [f.to_dict() for f in self.failures],
            "skipped_documents": self.skipped_documents,
        }


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SubmissionOrchestrator:
    """
    Runs one submission for one claimant.

    Usage:
        orchestrator = SubmissionOrchestrator(SqlRelationalStore(db), blob_store)
        result = await orchestrator.submit(draft, claimant_id=user.id)
    """

    def __init__(
        self,
        relational_store: RelationalStore,
        blob_store: BlobStore,
        logo_bucket: str = settings.LOGO_BUCKET,
        document_bucket: str = settings.DOCUMENT_BUCKET,
        enforce_ownership_cap: bool = settings.ENFORCE_UBO_OWNERSHIP_CAP,
        strict_document_abort: bool = settings.STRICT_DOCUMENT_ABORT,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._store = relational_store
        self._blobs = blob_store
        self._logo_bucket = logo_bucket
        self._document_bucket = document_bucket
        self._enforce_cap = enforce_ownership_cap
        self._strict = strict_document_abort
        self._clock = clock
        # one AsyncSession cannot run concurrent statements
        self._store_lock = asyncio.Lock()

    def _timestamp(self) -> int:
        return int(self._clock().timestamp() * 1000)

    # ── Public API ────────────────────────────────────────────

    async def submit(self, draft: KYBDraft, claimant_id: str) -> SubmissionResult:
        try:
            raise_for_violations(validate(draft, STEP_REVIEW, self._enforce_cap))
            result = await self._run(draft, claimant_id)
        except (ValidationError, SubmissionAborted) as e:
            draft.error = e.message
            raise
        draft.error = ""
        return result

    # ── Steps ─────────────────────────────────────────────────

    async def _run(self, draft: KYBDraft, claimant_id: str) -> SubmissionResult:
        # 1. logo (gating)
        logo_url = await self._upload_logo(draft.logo, claimant_id) if draft.logo else None

        # 2. record
        record = self._build_record(draft, claimant_id, logo_url)

        # 3. organization (gating)
        organization_id, created, stored_logo_url = await self._upsert_organization(claimant_id, record)
        result = SubmissionResult(
            organization_id=organization_id,
            created=created,
            logo_url=logo_url or stored_logo_url,
        )

        # 4. UBOs
        if draft.ubos:
            failure = await self._write_ubos(organization_id, draft)
            if failure:
                result.failures.append(failure)
            else:
                result.ubo_count = len(draft.ubos)

        # 5. documents
        if draft.documents:
            if self._strict and result.failures:
                result.skipped_documents = list(draft.documents)
            elif self._strict:
                await self._write_documents_strict(organization_id, claimant_id, draft.documents, result)
            else:
                await self._write_documents(organization_id, claimant_id, draft.documents, result)

        log = logger.warning if result.failures else logger.info
        log(
            f"KYB submission finished: claimant={claimant_id}, org_id={organization_id}, "
            f"created={created}, ubos={result.ubo_count}, documents={len(result.documents)}, "
            f"failures={len(result.failures)}"
        )
        return result

    async def _upload_logo(self, logo: PendingFile, claimant_id: str) -> str:
        path = f"{claimant_id}/logo-{self._timestamp()}.{logo.extension}"
        try:
            await self._blobs.upload(self._logo_bucket, path, logo.content, logo.content_type)
            return self._blobs.get_public_url(self._logo_bucket, path)
        except UploadError as e:
            logger.warning(f"logo upload failed, submission aborted: claimant={claimant_id}, {e}")
            raise SubmissionAborted(
                message=f"Logo upload failed: {e.message}",
                stage=STAGE_LOGO,
                cause=e,
            ) from e

    @staticmethod
    def _build_record(draft: KYBDraft, claimant_id: str, logo_url: str | None) -> dict[str, Any]:
        record = draft.profile.to_record()
        record["user_id"] = claimant_id
        record["kyb_status"] = INITIAL_STATUS
        # without a new logo the stored logo_url is left as it is
        if logo_url is not None:
            record["logo_url"] = logo_url
        return record

    async def _upsert_organization(self, claimant_id: str, record: dict[str, Any]) -> tuple[Any, bool, str | None]:
        try:
            async with self._store_lock:
                prior = await self._store.select(ORGANIZATIONS, {"user_id": claimant_id}, limit=1)
                rows = await self._store.upsert(ORGANIZATIONS, record, on_conflict="user_id")
            row = rows[0]
            return row["id"], not prior, row.get("logo_url")
        except PersistenceError as e:
            logger.warning(f"organization upsert failed, submission aborted: claimant={claimant_id}, {e}")
            raise SubmissionAborted(
                message=f"Saving the organization failed: {e.message}",
                stage=STAGE_ORGANIZATION,
                cause=e,
            ) from e

    async def _write_ubos(self, organization_id: Any, draft: KYBDraft) -> SubmissionFailure | None:
        rows = [{**ubo.to_record(), "organization_id": organization_id} for ubo in draft.ubos]
        try:
            async with self._store_lock:
                await self._store.replace(UBOS, {"organization_id": organization_id}, rows)
        except PersistenceError as e:
            logger.warning(f"UBO write failed: org_id={organization_id}, {e}")
            return SubmissionFailure.from_error(STAGE_UBOS, e)
        return None

    async def _write_document(
        self,
        organization_id: Any,
        claimant_id: str,
        document_type: str,
        file: PendingFile,
    ) -> tuple[dict[str, Any] | None, SubmissionFailure | None]:
        path = f"{claimant_id}/documents/{document_type}-{self._timestamp()}.{file.extension}"
        try:
            await self._blobs.upload(self._document_bucket, path, file.content, file.content_type)
        except UploadError as e:
            logger.warning(f"document upload failed: type={document_type}, {e}")
            return None, SubmissionFailure.from_error(STAGE_DOCUMENT_UPLOAD, e, document_type)

        metadata = {
            "organization_id": organization_id,
            "document_type": document_type,
            "document_name": file.filename,
            "file_path": path,
            "file_size": file.size,
            "mime_type": file.content_type,
        }
        try:
            async with self._store_lock:
                row = await self._store.insert(KYB_DOCUMENTS, metadata)
        except PersistenceError as e:
            logger.warning(f"document metadata insert failed: type={document_type}, path={path}, {e}")
            return None, SubmissionFailure.from_error(STAGE_DOCUMENT_METADATA, e, document_type)
        return row, None

    async def _write_documents(
        self,
        organization_id: Any,
        claimant_id: str,
        documents: dict[str, PendingFile],
        result: SubmissionResult,
    ) -> None:
        outcomes = await asyncio.gather(
            *(
                self._write_document(organization_id, claimant_id, doc_type, file)
                for doc_type, file in documents.items()
            ),
            return_exceptions=True,
        )
        for doc_type, outcome in zip(documents, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    f"document write crashed: type={doc_type}, {outcome.__class__.__name__}: {outcome}",
                    exc_info=outcome,
                )
                result.failures.append(SubmissionFailure(
                    stage=STAGE_DOCUMENT,
                    kind=outcome.__class__.__name__,
                    message=str(outcome) or outcome.__class__.__name__,
                    document_type=doc_type,
                ))
                continue
            row, failure = outcome
            if failure:
                result.failures.append(failure)
            else:
                result.documents.append(row)

    async def _write_documents_strict(
        self,
        organization_id: Any,
        claimant_id: str,
        documents: dict[str, PendingFile],
        result: SubmissionResult,
    ) -> None:
        pending = list(documents.items())
        for index, (doc_type, file) in enumerate(pending):
            row, failure = await self._write_document(organization_id, claimant_id, doc_type, file)
            if failure:
                result.failures.append(failure)
                result.skipped_documents = [t for t, _ in pending[index + 1:]]
                return
            result.documents.append(row)
