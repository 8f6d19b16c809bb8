import logging
from typing import List
from fastapi import APIRouter, UploadFile, File, Depends, BackgroundTasks
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker
from .. import pipeline
from ..deps import get_db, get_blob_store, get_detector, get_session_factory
from ..errors import RoiCropError
from ..schemas import image_payload
from ..utils.blobstore import BlobStore
from ..utils.roi import RoiDetector

router = APIRouter(prefix="/api", tags=["images"])
logger = logging.getLogger(__name__)

def success_response(data=None, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body

def error_response(exc: Exception, fallback: str) -> JSONResponse:
    if isinstance(exc, RoiCropError):
        if exc.status_code >= 500:
            logger.error("%s: %s", fallback, exc)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})
    logger.exception(fallback)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or fallback})

def schedule_purge(background_tasks: BackgroundTasks, orphans: int,
                   session_factory: sessionmaker, blob_store: BlobStore):
    if orphans:
        background_tasks.add_task(pipeline.purge_orphans_task, session_factory, blob_store)

@router.post("/images")
async def upload_images(
    files: List[UploadFile] | None = File(None),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    detector: RoiDetector = Depends(get_detector),
):
    try:
        uploads = []
        for f in files or []:
            if not f.filename:
                continue
            uploads.append(pipeline.Upload(
                filename=f.filename,
                data=await f.read(),
                media_type=f.content_type or "application/octet-stream",
            ))
        rows = await pipeline.process_uploads(db, uploads, blob_store=blob_store, detector=detector)
    except Exception as e:
        return error_response(e, "Failed to process images")
    return success_response([image_payload(r) for r in rows])

@router.get("/images")
def list_images(db: Session = Depends(get_db)):
    try:
        rows = pipeline.list_images(db)
    except Exception as e:
        return error_response(e, "Failed to get processed images")
    return success_response([image_payload(r) for r in rows])

@router.get("/images/download-target")
def bulk_download_target(db: Session = Depends(get_db)):
    try:
        target = pipeline.resolve_bulk_download(db)
    except Exception as e:
        return error_response(e, "Failed to download images")
    return success_response(**target.model_dump())

@router.get("/images/{image_id}/download-target")
def download_target(image_id: str, db: Session = Depends(get_db)):
    try:
        target = pipeline.resolve_download(db, image_id)
    except Exception as e:
        return error_response(e, "Failed to download image")
    return success_response(**target.model_dump())

@router.delete("/images/{image_id}")
async def delete_image(
    image_id: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        orphans = await pipeline.delete_image(db, image_id, blob_store=blob_store)
    except Exception as e:
        return error_response(e, "Failed to delete image")
    schedule_purge(background_tasks, orphans, session_factory, blob_store)
    return success_response()

@router.delete("/images")
async def delete_all_images(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    try:
        orphans = await pipeline.delete_all_images(db, blob_store=blob_store)
    except Exception as e:
        return error_response(e, "Failed to delete all images")
    schedule_purge(background_tasks, orphans, session_factory, blob_store)
    return success_response()

@router.post("/orphans/purge")
async def purge_orphans(db: Session = Depends(get_db), blob_store: BlobStore = Depends(get_blob_store)):
    try:
        report = await pipeline.purge_orphans(db, blob_store=blob_store)
    except Exception as e:
        return error_response(e, "Failed to purge orphaned blobs")
    return success_response(report.model_dump())
