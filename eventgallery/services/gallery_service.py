import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from eventgallery.api.schemas import CategoryNode, FailedItem, FolderNode, GalleryStructure, UploadResponse
from eventgallery.core.errors import NotFoundError, ValidationError, error_kind
from eventgallery.services.catalog_cache import CatalogCache
from eventgallery.services.identity import is_hidden, media_kind, validate_segment
from eventgallery.services.moderation_service import (
    AuditHook,
    UploadSource,
    unique_destination,
    write_upload,
    sanitize_name,
)
from eventgallery.services.scan_service import name_key, is_professional

logger = logging.getLogger("eventgallery.gallery")


class GalleryService:
    """Admin edits of the category/folder tree. Every mutation drops the cached catalog."""

    def __init__(self, media_root: Path, cache: CatalogCache, settings, audit: Optional[AuditHook] = None):
        self.media_root = Path(media_root)
        self.cache = cache
        self.settings = settings
        self.audit = audit

    async def _changed(self, action: str, message: str, payload: dict):
        self.cache.invalidate(action)
        logger.info(message)
        if self.audit is not None:
            await self.audit("INFO", action, message, payload)

    def _category_path(self, category: str, must_exist: bool = True) -> Path:
        path = self.media_root / validate_segment(category, self.settings, "category")
        if must_exist and not path.is_dir():
            raise NotFoundError(f"Category not found: {category}")
        return path

    def _folder_path(self, category: str, folder: str, must_exist: bool = True) -> Path:
        path = self._category_path(category) / validate_segment(folder, self.settings, "folder")
        if must_exist and not path.is_dir():
            raise NotFoundError(f"Folder not found: {category}/{folder}")
        return path

    def _guard_guest_category(self, category: str):
        if category == self.settings.guest_category:
            raise ValidationError(f"{category} holds guest uploads and cannot be renamed or deleted")

    def _subdirs(self, path: Path) -> List[Path]:
        pending = self.settings.pending_dir_name
        dirs = [p for p in path.iterdir() if p.is_dir() and not is_hidden(p.name) and p.name != pending]
        return sorted(dirs, key=lambda p: name_key(p.name))

    def structure(self) -> GalleryStructure:
        nodes: List[CategoryNode] = []
        if not self.media_root.is_dir():
            return GalleryStructure(structure=nodes)
        for category in self._subdirs(self.media_root):
            folders = []
            for folder in self._subdirs(category):
                count = sum(
                    1
                    for f in folder.iterdir()
                    if f.is_file() and not is_hidden(f.name) and media_kind(f.name, self.settings)
                )
                folders.append(FolderNode(name=folder.name, count=count))
            nodes.append(
                CategoryNode(
                    category=category.name,
                    is_professional=is_professional(
                        category.name,
                        self.settings.professional_keywords,
                        self.settings.professional_match_threshold,
                    ),
                    folders=folders,
                )
            )
        return GalleryStructure(structure=nodes)

    async def create_category(self, name: str) -> Path:
        path = self._category_path(name, must_exist=False)
        if path.exists():
            raise ValidationError(f"Category already exists: {path.name}")
        path.mkdir(parents=True)
        await self._changed("category_create", f"Created category {path.name}", {"category": path.name})
        return path

    async def create_folder(self, category: str, name: str) -> Path:
        path = self._folder_path(category, name, must_exist=False)
        if path.exists():
            raise ValidationError(f"Folder already exists: {category}/{path.name}")
        path.mkdir()
        await self._changed(
            "folder_create", f"Created folder {category}/{path.name}", {"category": category, "folder": path.name}
        )
        return path

    async def rename_category(self, category: str, new_name: str) -> Path:
        self._guard_guest_category(category)
        source = self._category_path(category)
        target = self._category_path(new_name, must_exist=False)
        if target.exists():
            raise ValidationError(f"Category already exists: {target.name}")
        os.rename(source, target)
        await self._changed(
            "category_rename", f"Renamed category {category} -> {target.name}", {"from": category, "to": target.name}
        )
        return target

    async def rename_folder(self, category: str, folder: str, new_name: str) -> Path:
        source = self._folder_path(category, folder)
        target = self._folder_path(category, new_name, must_exist=False)
        if target.exists():
            raise ValidationError(f"Folder already exists: {category}/{target.name}")
        os.rename(source, target)
        await self._changed(
            "folder_rename",
            f"Renamed folder {category}/{folder} -> {target.name}",
            {"category": category, "from": folder, "to": target.name},
        )
        return target

    async def delete_category(self, category: str):
        self._guard_guest_category(category)
        path = self._category_path(category)
        await asyncio.to_thread(shutil.rmtree, path)
        await self._changed("category_delete", f"Deleted category {category}", {"category": category})

    async def delete_folder(self, category: str, folder: str):
        path = self._folder_path(category, folder)
        await asyncio.to_thread(shutil.rmtree, path)
        await self._changed(
            "folder_delete", f"Deleted folder {category}/{folder}", {"category": category, "folder": folder}
        )

    async def upload_media(self, category: str, folder: str, uploads: Sequence[UploadSource]) -> UploadResponse:
        """Admin upload straight into a published folder, bypassing moderation."""
        target_dir = self._folder_path(category, folder)
        response = UploadResponse(count=0)
        for upload in uploads:
            name = sanitize_name(upload.filename or "upload")
            if media_kind(name, self.settings) is None:
                response.failed.append(
                    FailedItem(filename=name, error=ValidationError.kind, detail="File type not allowed")
                )
                continue
            target = unique_destination(target_dir, name)
            try:
                await write_upload(upload, target)
            except OSError as exc:
                logger.error("Upload to %s failed: %s", target_dir, exc)
                response.failed.append(FailedItem(filename=name, error=error_kind(exc), detail=str(exc)))
                continue
            response.count += 1
        if response.count:
            await self._changed(
                "gallery_upload",
                f"Uploaded {response.count} file(s) to {category}/{folder}",
                {"category": category, "folder": folder, "count": response.count},
            )
        return response
