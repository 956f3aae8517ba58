"""
External store contracts
========================
The workflow talks to two collaborators, both passed in explicitly:

  RelationalStore - transactional row store (organizations, UBOs, documents,
                    fund vaults). Failures surface as PersistenceError.
  BlobStore       - object storage with public URLs (logos, KYB documents).
                    Failures surface as UploadError.

Adapters: app.services.sql_store (SQLAlchemy), app.services.blob_store
(HTTP object storage / local filesystem).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

# Table names
ORGANIZATIONS = "organizations"
UBOS = "ultimate_beneficial_owners"
KYB_DOCUMENTS = "kyb_documents"
FUND_VAULTS = "fund_vaults"

Record = dict[str, Any]


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    path: str
    size: int
    content_type: str


class RelationalStore(Protocol):

    async def select(
        self,
        table: str,
        filters: Record | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Record]: ...

    async def insert(self, table: str, record: Record) -> Record: ...

    async def upsert(
        self,
        table: str,
        records: Record | list[Record],
        on_conflict: str = "id",
    ) -> list[Record]: ...

    async def replace(self, table: str, filters: Record, records: list[Record]) -> list[Record]:
        """Delete rows matching filters and insert records, atomically."""
        ...


class BlobStore(Protocol):

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> StoredObject: ...

    def get_public_url(self, bucket: str, path: str) -> str: ...
