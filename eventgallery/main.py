import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from eventgallery.api.routes_activity import router as activity_router
from eventgallery.api.routes_auth import router as auth_router
from eventgallery.api.routes_catalog import router as catalog_router
from eventgallery.api.routes_export import router as export_router
from eventgallery.api.routes_gallery import router as gallery_router
from eventgallery.api.routes_health import router as health_router
from eventgallery.api.routes_logs import router as logs_router
from eventgallery.api.routes_maintenance import router as maintenance_router
from eventgallery.api.routes_moderation import router as moderation_router
from eventgallery.api.routes_status import router as status_router
from eventgallery.core.config import APP_VERSION, settings as env_settings
from eventgallery.core.db import init_db
from eventgallery.core.errors import GalleryError
from eventgallery.core.logging_utils import setup_logging
from eventgallery.worker.jobs import start_worker

logger = logging.getLogger("eventgallery.app")

app = FastAPI(title="Event Gallery", version=APP_VERSION)


def _ensure_dir(path: Path, allow_failure: bool = False) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        return True
    except OSError as exc:
        logger.warning("Failed to create directory %s: %s", path, exc)
        if not allow_failure:
            raise
        return False


@app.on_event("startup")
async def startup():
    setup_logging(Path(env_settings.config_root), debug_enabled=env_settings.debug_logging)
    for path in (
        Path(env_settings.config_root),
        Path(env_settings.media_root),
        env_settings.thumbnails_dir,
        env_settings.web_dir,
    ):
        _ensure_dir(path)
    _ensure_dir(env_settings.pending_root, allow_failure=True)
    await init_db()
    start_worker()
    logger.info("Event Gallery %s serving %s", APP_VERSION, Path(env_settings.media_root).resolve())


@app.exception_handler(GalleryError)
async def gallery_error_handler(request: Request, exc: GalleryError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "detail": exc.message})


app.include_router(auth_router, prefix="/api")
app.include_router(catalog_router, prefix="/api")
app.include_router(export_router, prefix="/api")
app.include_router(moderation_router, prefix="/api")
app.include_router(maintenance_router, prefix="/api")
app.include_router(gallery_router, prefix="/api")
app.include_router(activity_router, prefix="/api")
app.include_router(logs_router, prefix="/api")
app.include_router(status_router, prefix="/api")
app.include_router(health_router, prefix="/api")
