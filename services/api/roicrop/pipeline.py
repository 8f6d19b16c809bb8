"""Upload, query, delete and export operations over the blob and metadata stores.

Every function takes its collaborators explicitly (session, blob store,
detector, HTTP client) and raises ``RoiCropError`` subclasses; the routers
turn those into responses.
"""
import asyncio
import logging
from dataclasses import dataclass
import httpx
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool
from . import crud
from .errors import NoFilesError, ImageNotFound, NoImagesError, UpstreamFetchError
from .models import ProcessedImage
from .schemas import DownloadTarget, PurgeReport
from .utils.archive import roi_filename, archive_filename, build_zip
from .utils.blobstore import BlobStore, make_blob_key, display_name, ORIGINALS_PREFIX, PROCESSED_PREFIX
from .utils.roi import RoiDetector, output_media_type

logger = logging.getLogger(__name__)

BULK_DOWNLOAD_URL = "/api/download/all"

@dataclass
class Upload:
    filename: str
    data: bytes
    media_type: str

async def process_uploads(db: Session, uploads: list[Upload], *, blob_store: BlobStore,
                          detector: RoiDetector) -> list[ProcessedImage]:
    """Store, crop and record each upload in order.

    The first failure aborts the batch; rows and blobs written for earlier
    uploads are kept.
    """
    if not uploads:
        raise NoFilesError()

    rows = []
    for upload in uploads:
        name = display_name(upload.filename)

        original = await blob_store.put(make_blob_key(ORIGINALS_PREFIX, name), upload.data, upload.media_type)

        roi_bytes = await run_in_threadpool(detector.detect_and_crop, upload.data, upload.media_type)
        roi_type = output_media_type(roi_bytes, upload.media_type)

        processed = await blob_store.put(make_blob_key(PROCESSED_PREFIX, name), roi_bytes, roi_type)

        row = crud.save_processed_image(
            db,
            original_name=name,
            original_url=original.url,
            processed_url=processed.url,
            original_blob_path=original.pathname,
            processed_blob_path=processed.pathname,
        )
        logger.info("Processed %s -> %s (id=%s)", name, processed.pathname, row.id)
        rows.append(row)
    return rows

def list_images(db: Session) -> list[ProcessedImage]:
    return crud.list_processed_images(db)

def get_image(db: Session, image_id: str) -> ProcessedImage:
    row = crud.get_processed_image(db, image_id)
    if row is None:
        raise ImageNotFound()
    return row

def resolve_download(db: Session, image_id: str) -> DownloadTarget:
    row = get_image(db, image_id)
    return DownloadTarget(url=row.processed_url, filename=roi_filename(row.original_name))

def resolve_bulk_download(db: Session) -> DownloadTarget:
    if not crud.list_processed_images(db):
        raise NoImagesError()
    return DownloadTarget(url=BULK_DOWNLOAD_URL, filename=archive_filename())

async def _delete_blobs(db: Session, row: ProcessedImage, blob_store: BlobStore) -> int:
    """Best-effort removal of a row's artifacts; failures go to the orphan ledger."""
    orphans = 0
    for path in (row.original_blob_path, row.processed_blob_path):
        if not path:
            continue
        try:
            await blob_store.delete(path)
        except Exception as e:
            logger.warning("Failed to delete blob %s of image %s: %s", path, row.id, e)
            orphans += 1
            try:
                crud.record_orphan(db, blob_path=path, image_id=row.id, error=str(e))
            except Exception:
                # the row still goes; this blob can only be found in the log now
                logger.exception("Could not record orphaned blob %s of image %s", path, row.id)
                db.rollback()
    return orphans

async def delete_image(db: Session, image_id: str, *, blob_store: BlobStore) -> int:
    """Delete one row and its artifacts. Returns the number of blobs left orphaned."""
    row = get_image(db, image_id)
    orphans = await _delete_blobs(db, row, blob_store)
    crud.delete_processed_images(db, [row.id])
    logger.info("Deleted image %s (%d orphaned blobs)", image_id, orphans)
    return orphans

async def delete_all_images(db: Session, *, blob_store: BlobStore) -> int:
    rows = crud.list_processed_images(db)
    orphans = 0
    for row in rows:
        orphans += await _delete_blobs(db, row, blob_store)
    deleted = crud.delete_processed_images(db, [row.id for row in rows])
    logger.info("Deleted %d images (%d orphaned blobs)", deleted, orphans)
    return orphans

async def purge_orphans(db: Session, *, blob_store: BlobStore) -> PurgeReport:
    purged = remaining = 0
    for orphan in crud.list_orphans(db):
        try:
            await blob_store.delete(orphan.blob_path)
        except Exception as e:
            logger.warning("Orphaned blob %s still not deletable (attempt %d): %s",
                           orphan.blob_path, orphan.attempts + 1, e)
            crud.mark_orphan_failed(db, orphan, str(e))
            remaining += 1
        else:
            crud.drop_orphan(db, orphan)
            purged += 1
    if purged or remaining:
        logger.info("Orphan purge: %d purged, %d remaining", purged, remaining)
    return PurgeReport(purged=purged, remaining=remaining)

async def purge_orphans_task(session_factory: sessionmaker, blob_store: BlobStore):
    """Background entry point; owns its session and never raises."""
    db = session_factory()
    try:
        await purge_orphans(db, blob_store=blob_store)
    except Exception:
        logger.exception("Orphan purge failed")
    finally:
        db.close()

async def fetch_artifact(client: httpx.AsyncClient, url: str) -> httpx.Response:
    try:
        response = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise UpstreamFetchError(f"Failed to fetch image: {e}") from e
    if not response.is_success:
        raise UpstreamFetchError(f"Failed to fetch image: HTTP {response.status_code}")
    return response

async def export_all(db: Session, *, client: httpx.AsyncClient) -> tuple[bytes, str]:
    """Zip every processed artifact that can be fetched; unreachable ones are skipped."""
    rows = crud.list_processed_images(db)
    if not rows:
        raise NoImagesError()

    async def fetch(row: ProcessedImage):
        try:
            response = await fetch_artifact(client, row.processed_url)
        except Exception as e:
            logger.warning("Skipping %s in export: %s", row.original_name, e)
            return None
        return roi_filename(row.original_name), response.content

    results = await asyncio.gather(*(fetch(row) for row in rows))
    entries = [r for r in results if r is not None]
    logger.info("Exporting %d of %d images", len(entries), len(rows))
    return build_zip(entries), archive_filename()
