import re
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse

from eventgallery.api.schemas import CatalogOut, UploadResponse
from eventgallery.core.auth import require_guest
from eventgallery.services.context import GalleryContext, get_context
from eventgallery.services.identity import is_hidden, media_kind

router = APIRouter(tags=["catalog"], dependencies=[Depends(require_guest)])

ARTIFACT_NAME = re.compile(r"^[0-9a-f]{40}\.webp$")
ARTIFACT_CACHE_HEADERS = {"Cache-Control": "public, max-age=86400"}


def _resolve_published(ctx: GalleryContext, rel_path: str) -> Path:
    rel = Path(rel_path)
    if rel.is_absolute():
        raise HTTPException(status_code=400, detail="Path must be relative to the media root")
    parts = rel.parts
    if len(parts) != 3 or any(is_hidden(p) or p == ctx.settings.pending_dir_name for p in parts):
        raise HTTPException(status_code=404, detail="Media not found")
    root = ctx.media_root.resolve()
    candidate = (root / rel).resolve()
    try:
        candidate.relative_to(root)
    except ValueError:
        raise HTTPException(status_code=400, detail="Path must remain within the media root")
    if not candidate.is_file() or media_kind(candidate.name, ctx.settings) is None:
        raise HTTPException(status_code=404, detail="Media not found")
    return candidate


def _artifact(directory: Path, filename: str) -> FileResponse:
    if not ARTIFACT_NAME.match(filename):
        raise HTTPException(status_code=404, detail="Artifact not found")
    path = directory / filename
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Artifact not found")
    return FileResponse(path, media_type="image/webp", headers=ARTIFACT_CACHE_HEADERS)


@router.get("/catalog", response_model=CatalogOut)
async def catalog(ctx: GalleryContext = Depends(get_context)):
    data, cached = await ctx.cache.get()
    return CatalogOut(categories=data.categories, cached=cached)


@router.get("/media/{rel_path:path}")
async def media(rel_path: str, ctx: GalleryContext = Depends(get_context)):
    return FileResponse(_resolve_published(ctx, rel_path))


@router.get("/artifacts/thumbnails/{filename}")
async def thumbnail(filename: str, ctx: GalleryContext = Depends(get_context)):
    return _artifact(ctx.generator.thumbnails_dir, filename)


@router.get("/artifacts/web/{filename}")
async def web_rendition(filename: str, ctx: GalleryContext = Depends(get_context)):
    return _artifact(ctx.generator.web_dir, filename)


@router.post("/uploads", response_model=UploadResponse)
async def upload_photos(files: List[UploadFile] = File(...), ctx: GalleryContext = Depends(get_context)):
    result = await ctx.moderation.ingest(files)
    return UploadResponse(count=result.accepted, failed=result.failed)
