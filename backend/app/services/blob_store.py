"""
Blob storage adapters
=====================
HttpBlobStore       - hosted object storage REST API (httpx)
                      POST {base}/object/{bucket}/{path}
                      GET  {base}/object/public/{bucket}/{path}
FilesystemBlobStore - local directory tree, for development

Neither adapter retries. A rejected or timed-out write raises UploadError
carrying the bucket and path; the caller decides whether that is fatal.

Usage:
    async with HttpBlobStore(base_url, service_key) as store:
        obj = await store.upload("kyb-documents", path, content, "application/pdf")
        url = store.get_public_url("kyb-documents", path)
"""
import asyncio
from collections.abc import AsyncGenerator
import logging
from pathlib import Path
from urllib.parse import quote

import httpx

from app.config import settings
from app.core.exceptions import UploadError
from app.services.stores import BlobStore, StoredObject

logger = logging.getLogger(__name__)


class HttpBlobStore:

    def __init__(
        self,
        base_url: str = settings.STORAGE_URL,
        service_key: str = settings.STORAGE_SERVICE_KEY,
        timeout: float = settings.STORAGE_TIMEOUT_SEC,
        cache_control: str = settings.STORAGE_CACHE_CONTROL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._timeout = timeout
        self._cache_control = cache_control
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        self._client = self._make_client()
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _make_client(self) -> httpx.AsyncClient:
        headers = {}
        if self._service_key:
            headers["Authorization"] = f"Bearer {self._service_key}"
            headers["apikey"] = self._service_key
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        )

    @staticmethod
    def _object_path(bucket: str, path: str) -> str:
        return f"{quote(bucket, safe='')}/{quote(path.lstrip('/'))}"

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        if self._client is None:
            self._client = self._make_client()

        try:
            resp = await self._client.post(
                f"/object/{self._object_path(bucket, path)}",
                content=content,
                headers={
                    "Content-Type": content_type,
                    "cache-control": f"max-age={self._cache_control}",
                    "x-upsert": "false",
                },
            )
        except httpx.HTTPError as e:
            raise UploadError(
                message=f"Upload to {bucket}/{path} failed: {e.__class__.__name__}",
                bucket=bucket,
                path=path,
            ) from e

        if resp.status_code >= 400:
            reason = _error_message(resp)
            raise UploadError(
                message=f"Upload to {bucket}/{path} rejected ({resp.status_code}): {reason}",
                bucket=bucket,
                path=path,
                details={"status_code": resp.status_code},
            )

        logger.debug(f"blob uploaded: {bucket}/{path} ({len(content)} bytes)")
        return StoredObject(bucket=bucket, path=path, size=len(content), content_type=content_type)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/object/public/{self._object_path(bucket, path)}"


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class FilesystemBlobStore:
    """Buckets are subdirectories of root. Existing objects are never overwritten."""

    def __init__(self, root: str | Path = settings.STORAGE_LOCAL_PATH, public_base_url: str = "/storage"):
        self._root = Path(root).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    def _target(self, bucket: str, path: str) -> Path:
        target = (self._root / bucket / path).resolve()
        if not target.is_relative_to(self._root / bucket):
            raise UploadError(message=f"Path escapes bucket: {path}", bucket=bucket, path=path)
        return target

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "xb") as fh:
            fh.write(content)

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        target = self._target(bucket, path)
        try:
            await asyncio.to_thread(self._write, target, content)
        except FileExistsError as e:
            raise UploadError(message=f"Object already exists: {bucket}/{path}", bucket=bucket, path=path) from e
        except OSError as e:
            raise UploadError(message=f"Upload to {bucket}/{path} failed: {e}", bucket=bucket, path=path) from e
        return StoredObject(bucket=bucket, path=path, size=len(content), content_type=content_type)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self._public_base_url}/{bucket}/{path.lstrip('/')}"


def create_blob_store() -> HttpBlobStore | FilesystemBlobStore:
    if settings.STORAGE_BACKEND == "filesystem":
        return FilesystemBlobStore(settings.STORAGE_LOCAL_PATH)
    return HttpBlobStore()


async def get_blob_store() -> AsyncGenerator[BlobStore, None]:
    """FastAPI dependency: one blob store handle per request."""
    store = create_blob_store()
    try:
        yield store
    finally:
        if isinstance(store, HttpBlobStore):
            await store.aclose()
