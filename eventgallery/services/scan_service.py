import asyncio
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple
from urllib.parse import quote

from rapidfuzz import fuzz

from eventgallery.api.schemas import Catalog, Category, Folder, MediaFile
from eventgallery.core.errors import ArtifactError
from eventgallery.services import status_service
from eventgallery.services.artifact_service import ArtifactGenerator
from eventgallery.services.identity import is_hidden, logical_path, media_kind

MEDIA_URL_PREFIX = "/api/media"
THUMBNAIL_URL_PREFIX = "/api/artifacts/thumbnails"
WEB_URL_PREFIX = "/api/artifacts/web"

logger = logging.getLogger("eventgallery.scan")


@dataclass
class FileEntry:
    category: str
    folder: str
    path: Path
    kind: str
    size: int
    mtime: float

    @property
    def logical_path(self) -> str:
        return logical_path(self.category, self.folder, self.path.name)


def media_url(logical: str) -> str:
    return f"{MEDIA_URL_PREFIX}/{quote(logical)}"


def name_key(name: str) -> Tuple[str, str]:
    return name.casefold(), name


def is_professional(name: str, keywords: Iterable[str], threshold: int = 100) -> bool:
    """
    Allow-list rule: a category is professional when one of the configured
    keywords occurs in its name, case-folded ("Photos Professionnelles").
    A threshold below 100 also accepts near matches scored by partial_ratio.
    """
    folded = name.casefold()
    for keyword in keywords:
        keyword = keyword.strip().casefold()
        # partial_ratio aligns the shorter string, so a short name would match a long keyword
        if not keyword or len(keyword) > len(folded):
            continue
        if keyword in folded:
            return True
        if threshold < 100 and fuzz.partial_ratio(keyword, folded) >= threshold:
            return True
    return False


def _gallery_dirs(path: Path, excluded: set[str]) -> List[os.DirEntry]:
    with os.scandir(path) as entries:
        dirs = [e for e in entries if e.is_dir() and not is_hidden(e.name) and e.name not in excluded]
    return sorted(dirs, key=lambda e: name_key(e.name))


def iter_gallery_folders(media_root: Path, settings) -> Iterable[Tuple[str, str, Path]]:
    """Yield (category, folder, path) for every published folder, Pending excluded."""
    if not media_root.is_dir():
        return
    excluded = {settings.pending_dir_name}
    for category in _gallery_dirs(media_root, excluded):
        try:
            folders = _gallery_dirs(Path(category.path), excluded)
        except OSError:
            logger.warning("Unreadable category %s", category.path, exc_info=True)
            continue
        for folder in folders:
            yield category.name, folder.name, Path(folder.path)


def collect_media(media_root: Path, settings) -> List[FileEntry]:
    """
    Walk category/folder exactly two levels deep. Files directly inside a
    category and anything nested below a folder are ignored.
    """
    entries: List[FileEntry] = []
    for category, folder, folder_path in iter_gallery_folders(media_root, settings):
        try:
            with os.scandir(folder_path) as children:
                files = [c for c in children if not is_hidden(c.name) and c.is_file()]
        except OSError:
            logger.warning("Unreadable folder %s", folder_path, exc_info=True)
            continue
        for child in files:
            kind = media_kind(child.name, settings)
            if kind is None:
                continue
            try:
                st = child.stat()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Skipping unreadable file %s: %s", child.path, exc)
                continue
            entries.append(FileEntry(category, folder, Path(child.path), kind, st.st_size, st.st_mtime))
    return entries


def directory_signature(media_root: Path) -> float:
    """
    Newest mtime of any file or directory under media_root (0.0 when absent).
    Symlinks are stat'ed but never followed; unreadable entries are skipped.
    """
    try:
        newest = os.stat(media_root).st_mtime
    except FileNotFoundError:
        return 0.0
    stack: List[str] = [str(media_root)]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                children = list(entries)
        except (FileNotFoundError, NotADirectoryError):
            continue
        except OSError as exc:
            logger.warning("Skipping unreadable directory %s: %s", current, exc)
            continue
        for entry in children:
            try:
                st = entry.stat(follow_symlinks=False)
                is_dir = entry.is_dir(follow_symlinks=False)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Skipping unreadable entry %s: %s", entry.path, exc)
                continue
            if st.st_mtime > newest:
                newest = st.st_mtime
            if is_dir:
                stack.append(entry.path)
    return newest


def build_media_file(entry: FileEntry, generator: ArtifactGenerator) -> MediaFile:
    logical = entry.logical_path
    original = media_url(logical)
    display = thumbnail = original
    if entry.kind == "image":
        try:
            thumbnail = f"{THUMBNAIL_URL_PREFIX}/{generator.ensure_thumbnail(entry.path, logical).name}"
        except ArtifactError as exc:
            logger.warning("Serving original as thumbnail: %s", exc)
        try:
            display = f"{WEB_URL_PREFIX}/{generator.ensure_web_optimized(entry.path, logical).name}"
        except ArtifactError as exc:
            logger.warning("Serving original for display: %s", exc)
    else:
        try:
            thumbnail = f"{THUMBNAIL_URL_PREFIX}/{generator.ensure_video_placeholder(logical).name}"
        except ArtifactError as exc:
            logger.warning("Serving original as video thumbnail: %s", exc)
    status_service.advance("scan")
    modified = datetime.fromtimestamp(entry.mtime)
    return MediaFile(
        name=entry.path.name,
        logical_path=logical,
        kind=entry.kind,  # type: ignore[arg-type]
        size_bytes=entry.size,
        source_modified_at=modified,
        date=modified,
        display_path=display,
        thumbnail_path=thumbnail,
        original_path=original,
    )


def assemble_catalog(items: Sequence[Tuple[FileEntry, MediaFile]], settings) -> Catalog:
    grouped: Dict[str, Dict[str, List[MediaFile]]] = {}
    for entry, media in items:
        grouped.setdefault(entry.category, {}).setdefault(entry.folder, []).append(media)

    categories: List[Category] = []
    for category_name in sorted(grouped, key=name_key):
        folders: List[Folder] = []
        for folder_name in sorted(grouped[category_name], key=name_key):
            files = sorted(grouped[category_name][folder_name], key=lambda m: (m.date, m.name))
            folders.append(Folder(name=folder_name, count=len(files), files=files))
        categories.append(
            Category(
                name=category_name,
                is_professional=is_professional(
                    category_name, settings.professional_keywords, settings.professional_match_threshold
                ),
                folders=folders,
            )
        )
    return Catalog(categories=categories)


async def scan_catalog(media_root: Path, generator: ArtifactGenerator, settings) -> Catalog:
    """
    Build the published catalog. Artifact generation runs in worker threads,
    at most settings.artifact_workers images decoded at once.
    """
    started = time.monotonic()
    entries = await asyncio.to_thread(collect_media, media_root, settings)
    status_service.begin("scan", total=len(entries), message="Scanning media")
    semaphore = asyncio.Semaphore(max(1, settings.artifact_workers))

    async def _build(entry: FileEntry) -> MediaFile:
        async with semaphore:
            return await asyncio.to_thread(build_media_file, entry, generator)

    try:
        media = await asyncio.gather(*(_build(entry) for entry in entries))
    except Exception:
        status_service.finish("scan", message="Scan failed", failed=True)
        raise
    catalog = assemble_catalog(list(zip(entries, media)), settings)
    elapsed = time.monotonic() - started
    status_service.finish("scan", message="Idle", meta={"files": len(entries), "seconds": round(elapsed, 2)})
    logger.info(
        "Catalog scan complete: %s categories, %s files (%.1fs)",
        len(catalog.categories),
        len(entries),
        elapsed,
    )
    return catalog
