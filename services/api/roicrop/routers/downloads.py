import logging
from urllib.parse import quote
import httpx
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from .. import pipeline
from ..deps import get_db, get_http_client
from ..errors import RoiCropError, NoImagesError, ImageNotFound
from ..utils.archive import roi_filename

router = APIRouter(prefix="/api/download", tags=["downloads"])
logger = logging.getLogger(__name__)

def content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace("?", "_").replace('"', "_")
    value = f'attachment; filename="{ascii_name}"'
    if ascii_name != filename:
        value += f"; filename*=UTF-8''{quote(filename)}"
    return value

def attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": content_disposition(filename), "Cache-Control": "no-cache"},
    )

# must be registered before /{image_id}
@router.get("/all")
async def download_all(db: Session = Depends(get_db), client: httpx.AsyncClient = Depends(get_http_client)):
    try:
        archive, filename = await pipeline.export_all(db, client=client)
    except NoImagesError as e:
        return JSONResponse(status_code=404, content={"error": e.detail})
    except Exception:
        logger.exception("Error downloading all images")
        return JSONResponse(status_code=500, content={"error": "Failed to download images"})
    return attachment(archive, "application/zip", filename)

@router.get("/{image_id}")
async def download_image(image_id: str, db: Session = Depends(get_db),
                         client: httpx.AsyncClient = Depends(get_http_client)):
    try:
        row = pipeline.get_image(db, image_id)
    except ImageNotFound as e:
        return JSONResponse(status_code=404, content={"error": e.detail})
    except Exception:
        logger.exception("Error looking up image %s", image_id)
        return JSONResponse(status_code=500, content={"error": "Failed to download image"})

    try:
        upstream = await pipeline.fetch_artifact(client, row.processed_url)
    except RoiCropError as e:
        logger.error("Error downloading image %s: %s", image_id, e)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch image"})

    media_type = upstream.headers.get("content-type") or "image/jpeg"
    return attachment(upstream.content, media_type, roi_filename(row.original_name))
