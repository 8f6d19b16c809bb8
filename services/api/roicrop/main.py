import logging
import os
import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from .settings import Settings, settings as default_settings
from .db import make_engine, make_session_factory, init_db
from .pipeline import purge_orphans_task
from .routers import images, downloads
from .utils.blobstore import BlobStore, LocalBlobStore
from .utils.roi import RoiDetector, get_detector

logger = logging.getLogger(__name__)

def configure_logging(level: str):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

def create_app(
    settings: Settings | None = None,
    *,
    detector: RoiDetector | None = None,
    blob_store: BlobStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="ROI Crop Service", version="0.1.0")

    # CORS
    origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    engine = make_engine(settings.DATABASE_URL)
    blob_dir = os.path.join(settings.STORAGE_DIR, "blobs")
    os.makedirs(blob_dir, exist_ok=True)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.detector = detector or get_detector(settings.ROI_DETECTOR)
    app.state.blob_store = blob_store or LocalBlobStore(
        blob_dir, base_url=settings.PUBLIC_BASE_URL.rstrip("/") + "/blobs"
    )
    app.state.http_client = http_client or httpx.AsyncClient(
        timeout=settings.FETCH_TIMEOUT_SECONDS, follow_redirects=True
    )
    owns_client = http_client is None

    @app.on_event("startup")
    async def on_startup():
        init_db(engine)
        await purge_orphans_task(app.state.session_factory, app.state.blob_store)

    @app.on_event("shutdown")
    async def on_shutdown():
        if owns_client:
            await app.state.http_client.aclose()
        engine.dispose()

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    app.include_router(images.router)
    app.include_router(downloads.router)
    app.mount("/blobs", StaticFiles(directory=blob_dir), name="blobs")
    return app

app = create_app()
