import asyncio

from fastapi import APIRouter, Depends, HTTPException

from eventgallery.api.schemas import CleanResult, JobOut, JobQueued, OptimizeStats
from eventgallery.core.auth import require_admin
from eventgallery.services.context import GalleryContext, get_context
from eventgallery.services.optimize_service import clean_cache, optimize_all
from eventgallery.worker.jobs import enqueue, job_result, job_status

router = APIRouter(prefix="/admin", tags=["maintenance"], dependencies=[Depends(require_admin)])


@router.post("/optimize", response_model=OptimizeStats)
async def optimize(ctx: GalleryContext = Depends(get_context)):
    stats = await optimize_all(ctx.media_root, ctx.generator, ctx.settings)
    await ctx.record("INFO", "optimize", "Optimized gallery images", stats.model_dump())
    return stats


@router.post("/optimize/run", response_model=JobQueued)
async def optimize_job(ctx: GalleryContext = Depends(get_context)):
    job_id = enqueue("optimize_all", lambda: asyncio.run(optimize_all(ctx.media_root, ctx.generator, ctx.settings)))
    await ctx.record("INFO", "optimize_queued", "Optimize job queued", {"job_id": job_id})
    return JobQueued(job_id=job_id, status="queued")


@router.post("/cache/clean", response_model=CleanResult)
async def clean(ctx: GalleryContext = Depends(get_context)):
    result = await asyncio.to_thread(clean_cache, ctx.media_root, ctx.generator, ctx.settings)
    await ctx.record("INFO", "cache_clean", "Removed orphaned artifacts", result.model_dump())
    return result


@router.post("/cache/clean/run", response_model=JobQueued)
async def clean_job(ctx: GalleryContext = Depends(get_context)):
    job_id = enqueue("cache_clean", lambda: clean_cache(ctx.media_root, ctx.generator, ctx.settings))
    await ctx.record("INFO", "cache_clean_queued", "Cache clean job queued", {"job_id": job_id})
    return JobQueued(job_id=job_id, status="queued")


@router.get("/jobs/{job_id}", response_model=JobOut)
async def get_job(job_id: str):
    status = job_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobOut(job_id=job_id, status=status, result=job_result(job_id))


@router.post("/cache/invalidate")
async def invalidate_cache(ctx: GalleryContext = Depends(get_context)):
    ctx.cache.invalidate("admin request")
    return {"success": True, "cache": ctx.cache.describe()}
