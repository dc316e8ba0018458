import asyncio
from typing import AsyncIterator
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.concurrency import iterate_in_threadpool
from fastapi.responses import StreamingResponse

from eventgallery.core.auth import require_guest
from eventgallery.services.context import GalleryContext, get_context
from eventgallery.services.export_service import collect_all, collect_folder, iter_zip_stream

router = APIRouter(tags=["export"], dependencies=[Depends(require_guest)])


async def closing_stream(members) -> AsyncIterator[bytes]:
    """Stream the archive and close it, releasing open files, as soon as the response ends or is cancelled."""
    stream = iter_zip_stream(members)
    try:
        async for chunk in iterate_in_threadpool(stream):
            yield chunk
    finally:
        stream.close()


def _zip_response(members, filename: str) -> StreamingResponse:
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}
    return StreamingResponse(closing_stream(members), media_type="application/zip", headers=headers)


@router.get("/download-all")
async def download_all(ctx: GalleryContext = Depends(get_context)):
    members = await asyncio.to_thread(collect_all, ctx.media_root, ctx.settings)
    return _zip_response(members, "galerie-complete.zip")


@router.get("/download-folder/{category}/{folder}")
async def download_folder(category: str, folder: str, ctx: GalleryContext = Depends(get_context)):
    members = await asyncio.to_thread(collect_folder, ctx.media_root, category, folder, ctx.settings)
    return _zip_response(members, f"{folder}.zip")
