"""
Shared fixtures: a throwaway SQLite database and blob directory per test,
a blob store whose deletions can be made to fail, and an HTTP client that
serves stored blobs without a network.
"""

import io
import mimetypes
import os
import tempfile

# roicrop.main builds a module-level app from the environment on import
_DEFAULT_DIR = tempfile.mkdtemp(prefix="roicrop-tests-")
os.environ.setdefault("STORAGE_DIR", _DEFAULT_DIR)
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DEFAULT_DIR}/default.db")

import httpx
import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from roicrop.db import init_db, make_engine, make_session_factory
from roicrop.errors import BlobStoreError
from roicrop.main import create_app
from roicrop.settings import Settings
from roicrop.utils.blobstore import LocalBlobStore
from roicrop.utils.roi import CenterCropDetector

BASE_URL = "http://testserver"


class FlakyBlobStore:
    """LocalBlobStore wrapper whose deletions fail while ``fail_deletes`` is set."""

    def __init__(self, inner: LocalBlobStore):
        self.inner = inner
        self.root = inner.root
        self.fail_deletes = False
        self.deleted = []

    async def put(self, pathname, data, content_type):
        return await self.inner.put(pathname, data, content_type)

    async def delete(self, pathname):
        if self.fail_deletes:
            raise BlobStoreError(f"simulated outage deleting {pathname}")
        self.deleted.append(pathname)
        await self.inner.delete(pathname)


def blob_transport(root):
    """Serve files under ``root`` at /blobs/..., 404 for anything else."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/blobs/"):
            target = root / path[len("/blobs/"):]
            if target.is_file():
                media_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
                return httpx.Response(200, content=target.read_bytes(), headers={"content-type": media_type})
        return httpx.Response(404, text="not found")

    return httpx.MockTransport(handler)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path}/roicrop.db",
        STORAGE_DIR=str(tmp_path / "data"),
        PUBLIC_BASE_URL=BASE_URL,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def blob_store(settings):
    root = os.path.join(settings.STORAGE_DIR, "blobs")
    return FlakyBlobStore(LocalBlobStore(root, base_url=f"{BASE_URL}/blobs"))


@pytest.fixture
def http_client(blob_store):
    return httpx.AsyncClient(transport=blob_transport(blob_store.root))


@pytest.fixture
def detector():
    return CenterCropDetector()


@pytest.fixture
def session_factory(settings):
    engine = make_engine(settings.DATABASE_URL)
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def app(settings, blob_store, http_client, detector):
    return create_app(settings, detector=detector, blob_store=blob_store, http_client=http_client)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def xpm_image():
    """An 8x8 two-colour XPM, a format Pillow can read but not write."""
    rows = b'"abababab",\n' * 8
    return (
        b"/* XPM */\n"
        b"static char *img[] = {\n"
        b'"8 8 2 1",\n'
        b'"a c #ff0000",\n'
        b'"b c #0000ff",\n' + rows + b"};\n"
    )


@pytest.fixture
def make_image():
    """Build encoded test images whose pixels encode their own coordinates."""

    def _make(width, height, fmt="PNG"):
        ys, xs = np.mgrid[0:height, 0:width]
        arr = np.stack([xs % 256, ys % 256, (xs + ys) % 256], axis=-1).astype(np.uint8)
        buf = io.BytesIO()
        Image.fromarray(arr).save(buf, format=fmt)
        return buf.getvalue()

    return _make
