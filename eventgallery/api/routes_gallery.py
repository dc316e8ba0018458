from typing import List

from fastapi import APIRouter, Depends, File, Form, UploadFile

from eventgallery.api.schemas import (
    CategoryCreate,
    CategoryRename,
    FolderCreate,
    FolderRename,
    GalleryStructure,
    UploadResponse,
)
from eventgallery.core.auth import require_admin
from eventgallery.services.context import GalleryContext, get_context

router = APIRouter(prefix="/admin/gallery", tags=["gallery"], dependencies=[Depends(require_admin)])


@router.get("/structure", response_model=GalleryStructure)
async def structure(ctx: GalleryContext = Depends(get_context)):
    return ctx.gallery.structure()


@router.post("/category")
async def create_category(payload: CategoryCreate, ctx: GalleryContext = Depends(get_context)):
    path = await ctx.gallery.create_category(payload.category_name)
    return {"success": True, "category": path.name}


@router.post("/folder")
async def create_folder(payload: FolderCreate, ctx: GalleryContext = Depends(get_context)):
    path = await ctx.gallery.create_folder(payload.category, payload.folder_name)
    return {"success": True, "category": payload.category, "folder": path.name}


@router.put("/category")
async def rename_category(payload: CategoryRename, ctx: GalleryContext = Depends(get_context)):
    path = await ctx.gallery.rename_category(payload.category, payload.new_name)
    return {"success": True, "category": path.name}


@router.put("/folder")
async def rename_folder(payload: FolderRename, ctx: GalleryContext = Depends(get_context)):
    path = await ctx.gallery.rename_folder(payload.category, payload.folder, payload.new_name)
    return {"success": True, "category": payload.category, "folder": path.name}


@router.delete("/category/{category}")
async def delete_category(category: str, ctx: GalleryContext = Depends(get_context)):
    await ctx.gallery.delete_category(category)
    return {"success": True}


@router.delete("/folder/{category}/{folder}")
async def delete_folder(category: str, folder: str, ctx: GalleryContext = Depends(get_context)):
    await ctx.gallery.delete_folder(category, folder)
    return {"success": True}


@router.post("/upload", response_model=UploadResponse)
async def upload_media(
    category: str = Form(...),
    folder: str = Form(...),
    files: List[UploadFile] = File(...),
    ctx: GalleryContext = Depends(get_context),
):
    return await ctx.gallery.upload_media(category, folder, files)
