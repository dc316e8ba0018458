import asyncio
import logging
import os
import re
import secrets
import shutil
import time
import weakref
import zipfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import quote

from eventgallery.api.schemas import BatchResult, FailedItem, IngestResult, PendingUpload
from eventgallery.core.errors import GalleryError, NotFoundError, StorageError, ValidationError, error_kind
from eventgallery.services.catalog_cache import CatalogCache
from eventgallery.services.identity import is_archive, is_hidden, media_kind

PENDING_URL_PREFIX = "/api/admin/pending-media"
CHUNK_SIZE = 1024 * 1024
MAC_METADATA_DIR = "__MACOSX"
STORED_NAME = re.compile(r"^\d{13}-[0-9a-f]{8}-(?P<original>.+)$")
_UNSAFE_CHARS = re.compile(r"[^\w.\- ()]+")
# encrypted entries raise RuntimeError, unsupported compression NotImplementedError
ARCHIVE_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, RuntimeError, NotImplementedError)

logger = logging.getLogger("eventgallery.moderation")


class UploadSource(Protocol):
    filename: Optional[str]

    async def read(self, size: int = -1) -> bytes: ...


AuditHook = Callable[[str, str, str, dict], Awaitable[None]]
Notifier = Callable[[IngestResult], Awaitable[None]]


def _safe_unlink(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        logger.debug("Failed to remove %s", path, exc_info=True)


def sanitize_name(name: str) -> str:
    base = PurePosixPath(name.replace("\\", "/")).name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip(" .")
    return cleaned or "file"


def generate_stored_name(original: str) -> str:
    """Collision-free pending name that still carries the uploader's file name."""
    return f"{int(time.time() * 1000):013d}-{secrets.token_hex(4)}-{sanitize_name(original)}"


def original_name_of(stored: str) -> str:
    match = STORED_NAME.match(stored)
    return match.group("original") if match else stored


def require_plain_name(name: str) -> str:
    if not name or "/" in name or "\\" in name or name in {".", ".."} or is_hidden(name):
        raise ValidationError(f"Invalid file name: {name!r}")
    return name


def unique_destination(directory: Path, name: str) -> Path:
    candidate = directory / name
    counter = 1
    while candidate.exists():
        candidate = directory / f"{Path(name).stem}-{counter}{Path(name).suffix}"
        counter += 1
    return candidate


def _open_new(target: Path):
    """Open target for writing, creating its folder when missing (an approve may have pruned it)."""
    try:
        return target.open("wb")
    except FileNotFoundError:
        target.parent.mkdir(parents=True, exist_ok=True)
        return target.open("wb")


async def write_upload(upload: UploadSource, target: Path):
    try:
        with target.open("wb") as fh:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                fh.write(chunk)
    except BaseException:
        _safe_unlink(target)
        raise


class ModerationService:
    """
    Pending uploads live under the Pending folder of the guest category, either
    at its root or one level down in a folder labelled after the ZIP they came
    from. Approval moves an item into the published folder of the same label
    (or the default approved folder); rejection deletes it.
    """

    def __init__(
        self,
        pending_root: Path,
        publish_root: Path,
        approved_folder: str,
        cache: CatalogCache,
        settings,
        audit: Optional[AuditHook] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.pending_root = Path(pending_root)
        self.publish_root = Path(publish_root)
        self.approved_folder = approved_folder
        self.cache = cache
        self.settings = settings
        self.audit = audit
        self.notifier = notifier
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @classmethod
    def from_settings(cls, settings, cache: CatalogCache, audit=None, notifier=None) -> "ModerationService":
        return cls(
            pending_root=settings.pending_root,
            publish_root=settings.publish_root,
            approved_folder=settings.approved_folder,
            cache=cache,
            settings=settings,
            audit=audit,
            notifier=notifier,
        )

    async def _audit(self, level: str, action: str, message: str, payload: dict):
        if self.audit is not None:
            await self.audit(level, action, message, payload)

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    # ---- ingest ----

    def validate_upload_names(self, filenames: Sequence[Optional[str]]):
        if not filenames:
            raise ValidationError("No files supplied")
        for name in filenames:
            if not name or not (media_kind(name, self.settings) or is_archive(name, self.settings)):
                raise ValidationError(f"File type not allowed: {name}")

    def _folder_label(self, parts: Sequence[str]) -> str:
        label = " - ".join(sanitize_name(p) for p in parts if p)
        if label.casefold() == self.settings.pending_dir_name.casefold():
            label = f"{label}_"
        return label or "archive"

    def _extract_archive(self, archive_path: Path, archive_name: str) -> Tuple[List[str], List[FailedItem]]:
        stored: List[str] = []
        failed: List[FailedItem] = []
        stem = Path(sanitize_name(archive_name)).stem
        with zipfile.ZipFile(archive_path) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                parts = PurePosixPath(info.filename.replace("\\", "/")).parts
                if not parts or any(is_hidden(p) or p == MAC_METADATA_DIR for p in parts):
                    continue
                if media_kind(parts[-1], self.settings) is None:
                    logger.debug("Skipping non-media entry %s in %s", info.filename, archive_name)
                    continue
                target_dir = self.pending_root / self._folder_label([stem, *parts[:-1]])
                target = target_dir / generate_stored_name(parts[-1])
                try:
                    with zf.open(info) as src, _open_new(target) as dst:
                        shutil.copyfileobj(src, dst, CHUNK_SIZE)
                except ARCHIVE_ERRORS + (OSError,) as exc:
                    _safe_unlink(target)
                    logger.warning("Could not extract %s from %s: %s", info.filename, archive_name, exc)
                    failed.append(
                        FailedItem(filename=f"{archive_name}:{info.filename}", error=StorageError.kind, detail=str(exc))
                    )
                    continue
                stored.append(target.name)
        return stored, failed

    async def ingest(self, uploads: Sequence[UploadSource]) -> IngestResult:
        self.validate_upload_names([u.filename for u in uploads])
        self.pending_root.mkdir(parents=True, exist_ok=True)
        result = IngestResult()
        for upload in uploads:
            filename = upload.filename or "upload"
            try:
                if is_archive(filename, self.settings):
                    archive_path = self.pending_root / f".upload-{secrets.token_hex(6)}.zip"
                    await write_upload(upload, archive_path)
                    try:
                        stored, failed = await asyncio.to_thread(self._extract_archive, archive_path, filename)
                    finally:
                        _safe_unlink(archive_path)
                    result.stored.extend(stored)
                    result.failed.extend(failed)
                    logger.info("Extracted %s media file(s) from %s", len(stored), filename)
                else:
                    target = self.pending_root / generate_stored_name(filename)
                    await write_upload(upload, target)
                    result.stored.append(target.name)
            except ARCHIVE_ERRORS as exc:
                logger.warning("Unreadable archive %s: %s", filename, exc)
                result.failed.append(
                    FailedItem(filename=filename, error=StorageError.kind, detail=f"Unreadable archive: {exc}")
                )
            except OSError as exc:
                logger.error("Could not store upload %s: %s", filename, exc)
                result.failed.append(FailedItem(filename=filename, error=error_kind(exc), detail=str(exc)))
        result.accepted = len(result.stored)
        logger.info("Ingest complete: %s accepted, %s failed", result.accepted, len(result.failed))
        await self._audit(
            "INFO",
            "ingest",
            f"Ingested {result.accepted} upload(s)",
            {"stored": result.stored, "failed": [f.model_dump() for f in result.failed]},
        )
        if self.notifier is not None and result.accepted:
            try:
                await self.notifier(result)
            except Exception:
                logger.warning("Ingest notification failed", exc_info=True)
        return result

    # ---- listing ----

    def _iter_pending_files(self):
        if not self.pending_root.is_dir():
            return
        for root, dirs, files in os.walk(self.pending_root):
            dirs[:] = sorted(d for d in dirs if not is_hidden(d))
            for name in sorted(files):
                if is_hidden(name) or media_kind(name, self.settings) is None:
                    continue
                yield Path(root) / name

    def list_pending(self) -> List[PendingUpload]:
        items: List[PendingUpload] = []
        for path in self._iter_pending_files():
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            rel = path.relative_to(self.pending_root)
            items.append(
                PendingUpload(
                    name=path.name,
                    original_name=original_name_of(path.name),
                    folder_path=rel.parent.as_posix() if rel.parent != Path(".") else "",
                    kind=media_kind(path.name, self.settings),  # type: ignore[arg-type]
                    size_bytes=st.st_size,
                    uploaded_at=datetime.fromtimestamp(st.st_mtime),
                    path=f"{PENDING_URL_PREFIX}/{quote(rel.as_posix())}",
                )
            )
        items.sort(key=lambda p: (p.uploaded_at, p.name), reverse=True)
        return items

    def pending_file(self, rel_path: str) -> Path:
        root = self.pending_root.resolve()
        candidate = (root / rel_path).resolve()
        if not candidate.is_relative_to(root):
            raise ValidationError("Path must remain within the pending area")
        if not candidate.is_file():
            raise NotFoundError(f"Pending file not found: {rel_path}")
        return candidate

    def _find_pending(self, name: str) -> Optional[Path]:
        direct = self.pending_root / name
        if direct.is_file():
            return direct
        for path in self._iter_pending_files():
            if path.name == name:
                return path
        return None

    def _prune_empty(self, directory: Path):
        while directory != self.pending_root and directory.is_relative_to(self.pending_root):
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    # ---- approve / reject ----

    def _move_to_published(self, name: str) -> Path:
        source = self._find_pending(name)
        if source is None:
            raise NotFoundError(f"Pending file not found: {name}")
        rel_parent = source.parent.relative_to(self.pending_root)
        folder = rel_parent.parts[0] if rel_parent.parts else self.approved_folder
        dest_dir = self.publish_root / folder
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            dest = unique_destination(dest_dir, name)
            os.rename(source, dest)
        except FileNotFoundError as exc:
            raise NotFoundError(f"Pending file not found: {name}") from exc
        except OSError as exc:
            raise StorageError(f"Could not publish {name}: {exc}") from exc
        self._prune_empty(source.parent)
        logger.info("Approved %s -> %s", name, dest)
        return dest

    def _delete_pending(self, name: str) -> Path:
        source = self._find_pending(name)
        if source is None:
            raise NotFoundError(f"Pending file not found: {name}")
        try:
            source.unlink()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Pending file not found: {name}") from exc
        except OSError as exc:
            raise StorageError(f"Could not delete {name}: {exc}") from exc
        self._prune_empty(source.parent)
        logger.info("Rejected %s", name)
        return source

    async def _approve_one(self, name: str) -> Path:
        require_plain_name(name)
        async with self._lock_for(name):
            return await asyncio.to_thread(self._move_to_published, name)

    async def _reject_one(self, name: str) -> Path:
        require_plain_name(name)
        async with self._lock_for(name):
            return await asyncio.to_thread(self._delete_pending, name)

    async def approve(self, name: str) -> Path:
        dest = await self._approve_one(name)
        self.cache.invalidate("approve")
        await self._audit("INFO", "approve", f"Approved {name}", {"filename": name, "destination": str(dest)})
        return dest

    async def reject(self, name: str):
        await self._reject_one(name)
        self.cache.invalidate("reject")
        await self._audit("INFO", "reject", f"Rejected {name}", {"filename": name})

    async def _batch(self, names: Sequence[str], op, action: str) -> BatchResult:
        result = BatchResult()
        for name in names:
            try:
                await op(name)
            except (GalleryError, OSError) as exc:
                result.failed.append(FailedItem(filename=name, error=error_kind(exc), detail=str(exc)))
                continue
            result.success.append(name)
        if result.success:
            self.cache.invalidate(f"batch {action}")
        logger.info("Batch %s: %s succeeded, %s failed", action, len(result.success), len(result.failed))
        await self._audit(
            "INFO" if not result.failed else "WARN",
            f"batch_{action}",
            f"Batch {action}: {len(result.success)} ok, {len(result.failed)} failed",
            result.model_dump(),
        )
        return result

    async def batch_approve(self, names: Sequence[str]) -> BatchResult:
        return await self._batch(names, self._approve_one, "approve")

    async def batch_reject(self, names: Sequence[str]) -> BatchResult:
        return await self._batch(names, self._reject_one, "reject")
