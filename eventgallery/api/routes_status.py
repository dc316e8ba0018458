from fastapi import APIRouter, Depends

from eventgallery.core.auth import require_admin
from eventgallery.services.context import GalleryContext, get_context
from eventgallery.services.status_service import get_status
from eventgallery.worker.queue import describe_jobs, job_queue, running_jobs

router = APIRouter(prefix="/status", tags=["status"], dependencies=[Depends(require_admin)])


@router.get("")
async def current_status(ctx: GalleryContext = Depends(get_context)):
    return {
        "status": get_status(),
        "queue_depth": job_queue.qsize(),
        "running_jobs": running_jobs(),
        "jobs": describe_jobs(),
        "catalog_cache": ctx.cache.describe(),
    }
