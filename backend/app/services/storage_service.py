"""
Blob storage for evidence images.

A blob store takes bytes under a path and hands back an opaque handle;
`resolve` turns a handle into a URL a browser can fetch.
"""

import os
import re
import secrets
from pathlib import Path
from typing import Optional, Protocol

import aiofiles
import httpx
import structlog

from app.core.config import Settings
from app.core.exceptions import BlobStoreError

logger = structlog.get_logger()

INITIAL_NAMESPACE = "disaster-images"
RESPONSE_NAMESPACE = "response-images"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def make_blob_path(namespace: str, filename: Optional[str]) -> str:
    """
    Collision-resistant object path: `<namespace>/<random>-<original name>`.
    """
    name = os.path.basename(filename or "") or "image"
    name = _UNSAFE_CHARS.sub("_", name).strip("._") or "image"
    return f"{namespace}/{secrets.token_hex(8)}-{name}"


class BlobStore(Protocol):
    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        ...

    def resolve(self, handle: str) -> str:
        ...


class LocalBlobStore:
    """
    Files on local disk under `root`, served back through the files router.
    """

    def __init__(self, root: str, public_url: str):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")

    def local_path(self, handle: str) -> Path:
        # Handles come from make_blob_path, but the files router passes user input here
        candidate = (self.root / handle).resolve()
        if self.root.resolve() not in candidate.parents:
            raise BlobStoreError("Invalid file path")
        return candidate

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        file_path = self.local_path(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("blob_upload_failed", path=path, error=str(e))
            raise BlobStoreError() from e
        return path

    def resolve(self, handle: str) -> str:
        return f"{self.public_url}/{handle}"


class SupabaseBlobStore:
    """
    Supabase Storage over its REST API. The bucket is expected to be public.
    """

    def __init__(self, base_url: str, api_key: str, bucket: str, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "false",
        }
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, content=content, headers=headers, timeout=self.timeout)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("blob_upload_failed", path=path, error=str(e))
            raise BlobStoreError() from e
        return path

    def resolve(self, handle: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{handle}"


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.BLOB_BACKEND == "supabase":
        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase blob backend")
        return SupabaseBlobStore(settings.SUPABASE_URL, settings.SUPABASE_KEY, settings.SUPABASE_BUCKET)
    return LocalBlobStore(
        settings.UPLOAD_DIR,
        f"{settings.PUBLIC_BASE_URL.rstrip('/')}{settings.API_V1_STR}/files",
    )
