import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from eventgallery.api.schemas import BatchRequest, BatchResult, ModerationRequest, ModerationResult, PendingList
from eventgallery.core.auth import require_admin
from eventgallery.services.context import GalleryContext, get_context

router = APIRouter(prefix="/admin", tags=["moderation"], dependencies=[Depends(require_admin)])


@router.get("/pending", response_model=PendingList)
async def pending_uploads(ctx: GalleryContext = Depends(get_context)):
    files = await asyncio.to_thread(ctx.moderation.list_pending)
    return PendingList(files=files, count=len(files))


@router.get("/pending-media/{rel_path:path}")
async def pending_media(rel_path: str, ctx: GalleryContext = Depends(get_context)):
    return FileResponse(ctx.moderation.pending_file(rel_path))


@router.post("/approve", response_model=ModerationResult)
async def approve_upload(payload: ModerationRequest, ctx: GalleryContext = Depends(get_context)):
    dest = await ctx.moderation.approve(payload.filename)
    return ModerationResult(
        success=True,
        filename=payload.filename,
        destination=dest.relative_to(ctx.media_root).as_posix(),
    )


@router.post("/reject", response_model=ModerationResult)
async def reject_upload(payload: ModerationRequest, ctx: GalleryContext = Depends(get_context)):
    await ctx.moderation.reject(payload.filename)
    return ModerationResult(success=True, filename=payload.filename)


@router.post("/batch-approve", response_model=BatchResult)
async def batch_approve(payload: BatchRequest, ctx: GalleryContext = Depends(get_context)):
    return await ctx.moderation.batch_approve(payload.filenames)


@router.post("/batch-reject", response_model=BatchResult)
async def batch_reject(payload: BatchRequest, ctx: GalleryContext = Depends(get_context)):
    return await ctx.moderation.batch_reject(payload.filenames)
