import os, re, time, uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from starlette.concurrency import run_in_threadpool
from ..errors import BlobStoreError

ORIGINALS_PREFIX = "originals"
PROCESSED_PREFIX = "processed"

@dataclass(frozen=True)
class StoredBlob:
    url: str
    pathname: str

class BlobStore(Protocol):
    async def put(self, pathname: str, data: bytes, content_type: str) -> StoredBlob: ...

    async def delete(self, pathname: str) -> None: ...

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")

def display_name(filename: str | None) -> str:
    """Base name of an upload; folder uploads may carry a relative path."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or "image"

def make_blob_key(prefix: str, filename: str) -> str:
    """Timestamp-prefixed key with a random suffix, e.g. originals/1700000000000-a-3f2c9e1b7d4a.jpg"""
    stem, ext = os.path.splitext(display_name(filename))
    stem = _UNSAFE.sub("_", stem).strip("._") or "image"
    ext = _UNSAFE.sub("", ext).lower()
    return f"{prefix}/{int(time.time() * 1000)}-{stem}-{uuid.uuid4().hex[:12]}{ext}"

class LocalBlobStore:
    """Blob store on the local filesystem; files are served by the app under /blobs."""

    def __init__(self, root: str | Path, base_url: str):
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def _resolve(self, pathname: str) -> Path:
        path = (self.root / pathname).resolve()
        if path == self.root or self.root not in path.parents:
            raise BlobStoreError(f"Invalid blob path: {pathname}")
        return path

    def url_for(self, pathname: str) -> str:
        return f"{self.base_url}/{pathname}"

    def _write(self, path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    async def put(self, pathname: str, data: bytes, content_type: str) -> StoredBlob:
        path = self._resolve(pathname)
        try:
            await run_in_threadpool(self._write, path, data)
        except OSError as e:
            raise BlobStoreError(f"Failed to store {pathname}: {e}") from e
        return StoredBlob(url=self.url_for(pathname), pathname=pathname)

    async def delete(self, pathname: str) -> None:
        path = self._resolve(pathname)
        try:
            await run_in_threadpool(path.unlink, missing_ok=True)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete {pathname}: {e}") from e
