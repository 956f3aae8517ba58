"""
Shared test fixtures
====================
- environment pinned before any app module is imported (in-memory SQLite,
  test secret, no dev-time create_all)
- in-memory RelationalStore / BlobStore fakes with failure injection
- draft builders for the common submission scenarios
"""
import asyncio
from collections import defaultdict
from decimal import Decimal
import itertools
import os
import sys
import uuid
from datetime import UTC, datetime, timedelta

import pytest

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND_DIR = os.path.join(BASE_DIR, "backend")
sys.path.insert(0, BACKEND_DIR)

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-kyb-unit-tests-only")
os.environ.setdefault("STORAGE_BACKEND", "filesystem")

from app.core.draft import KYBDraft, PendingFile  # noqa: E402
from app.core.exceptions import PersistenceError, UploadError  # noqa: E402
from app.services.stores import StoredObject  # noqa: E402


# ──────────────────────────────────────────────────────────────────────────────
# Fake stores
# ──────────────────────────────────────────────────────────────────────────────

class InMemoryRelationalStore:
    """Dict-of-lists tables. fail_on[(table, op)] makes that call raise."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.fail_on: dict[tuple[str, str], str] = {}
        self.calls: list[tuple[str, str]] = []

    async def _enter(self, table: str, op: str) -> None:
        self.calls.append((op, table))
        await asyncio.sleep(0)
        if (table, op) in self.fail_on:
            raise PersistenceError(message=self.fail_on[(table, op)], table=table)

    @staticmethod
    def _matches(row: dict, filters: dict | None) -> bool:
        return all(row.get(k) == v for k, v in (filters or {}).items())

    async def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        await self._enter(table, "select")
        rows = [dict(r) for r in self.tables[table] if self._matches(r, filters)]
        if order_by:
            rows.sort(key=lambda r: r[order_by], reverse=descending)
        return rows[:limit] if limit is not None else rows

    async def insert(self, table, record):
        await self._enter(table, "insert")
        row = {"id": uuid.uuid4(), **record}
        self.tables[table].append(row)
        return dict(row)

    async def upsert(self, table, records, on_conflict="id"):
        await self._enter(table, "upsert")
        saved = []
        for record in [records] if isinstance(records, dict) else records:
            existing = next(
                (r for r in self.tables[table] if r.get(on_conflict) == record.get(on_conflict)),
                None,
            )
            if existing is None:
                existing = {"id": uuid.uuid4(), **record}
                self.tables[table].append(existing)
            else:
                existing.update(record)
            saved.append(dict(existing))
        return saved

    async def replace(self, table, filters, records):
        await self._enter(table, "replace")
        kept = [r for r in self.tables[table] if not self._matches(r, filters)]
        new_rows = [{"id": uuid.uuid4(), **r} for r in records]
        self.tables[table] = kept + new_rows
        return [dict(r) for r in new_rows]


class InMemoryBlobStore:
    """Objects keyed by (bucket, path). Paths containing a fail_paths marker are rejected."""

    def __init__(self, base_url: str = "https://blobs.test/public", delay: float = 0.01):
        self.base_url = base_url
        self.delay = delay
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.fail_paths: set[str] = set()
        self.fail_buckets: set[str] = set()
        self.max_in_flight = 0
        self._in_flight = 0

    async def upload(self, bucket, path, content, content_type="application/octet-stream"):
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            await asyncio.sleep(self.delay)
            if bucket in self.fail_buckets or any(m in path for m in self.fail_paths):
                raise UploadError(message=f"rejected: {bucket}/{path}", bucket=bucket, path=path)
            if (bucket, path) in self.objects:
                raise UploadError(message=f"exists: {bucket}/{path}", bucket=bucket, path=path)
            self.objects[(bucket, path)] = (content, content_type)
        finally:
            self._in_flight -= 1
        return StoredObject(bucket=bucket, path=path, size=len(content), content_type=content_type)

    def get_public_url(self, bucket, path):
        return f"{self.base_url}/{bucket}/{path}"

    def paths(self, bucket: str) -> list[str]:
        return sorted(p for b, p in self.objects if b == bucket)


@pytest.fixture
def relational_store():
    return InMemoryRelationalStore()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def ticking_clock():
    """Clock advancing one second per call, so every blob path is unique."""
    start = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    counter = itertools.count()
    return lambda: start + timedelta(seconds=next(counter))


# ──────────────────────────────────────────────────────────────────────────────
# Draft builders
# ──────────────────────────────────────────────────────────────────────────────

def pdf(name: str = "file.pdf", size: int = 64) -> PendingFile:
    return PendingFile(filename=name, content=b"%" * size, content_type="application/pdf")


def png(name: str = "logo.png") -> PendingFile:
    return PendingFile(filename=name, content=b"\x89PNG" + b"0" * 16, content_type="image/png")


def make_draft(name: str = "Acme Relief", ubos=(), documents=None, logo=None) -> KYBDraft:
    draft = KYBDraft.initialize()
    draft.set_field("organization_name", name)
    for first, last, pct in ubos:
        index = draft.add_ubo()
        draft.update_ubo(index, "first_name", first)
        draft.update_ubo(index, "last_name", last)
        draft.update_ubo(index, "ownership_percentage", Decimal(str(pct)))
    for doc_type, file in (documents or {}).items():
        draft.attach_document(doc_type, file)
    if logo is not None:
        draft.attach_logo(logo)
    return draft


@pytest.fixture
def draft_factory():
    return make_draft


@pytest.fixture
def pdf_file():
    return pdf


@pytest.fixture
def png_file():
    return png
