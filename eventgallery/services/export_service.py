import logging
import zipfile
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

from eventgallery.core.errors import NotFoundError, ValidationError
from eventgallery.services.identity import is_hidden, media_kind, validate_segment
from eventgallery.services.scan_service import collect_media

CHUNK_SIZE = 1024 * 1024

logger = logging.getLogger("eventgallery.export")

ArchiveMember = Tuple[Path, str]


class _StreamBuffer:
    """Write-only sink for ZipFile; zipfile falls back to data descriptors when it cannot seek."""

    def __init__(self):
        self._chunks: List[bytes] = []

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self):
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def iter_zip_stream(files: Iterable[ArchiveMember]) -> Iterator[bytes]:
    """
    Yield a deflate zip of (path, arcname) members as it is produced. At most one
    read chunk plus its compressed output is held in memory. Errors propagate so
    the response is aborted rather than completed with a truncated archive.
    """
    buffer = _StreamBuffer()
    count = 0
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path, arcname in files:
            zinfo = zipfile.ZipInfo.from_file(path, arcname)
            zinfo.compress_type = zipfile.ZIP_DEFLATED
            with path.open("rb") as src, zf.open(zinfo, "w") as dest:
                while True:
                    chunk = src.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    dest.write(chunk)
                    data = buffer.drain()
                    if data:
                        yield data
            data = buffer.drain()
            if data:
                yield data
            count += 1
    tail = buffer.drain()
    if tail:
        yield tail
    logger.info("Archive stream complete: %s file(s)", count)


def collect_all(media_root: Path, settings) -> List[ArchiveMember]:
    return [
        (entry.path, entry.logical_path)
        for entry in sorted(collect_media(Path(media_root), settings), key=lambda e: e.logical_path)
    ]


def resolve_folder(media_root: Path, category: str, folder: str, settings) -> Path:
    category = validate_segment(category, settings, "category")
    folder = validate_segment(folder, settings, "folder")
    root = Path(media_root).resolve()
    target = (root / category / folder).resolve()
    if not target.is_relative_to(root) or len(target.relative_to(root).parts) != 2:
        raise ValidationError("Folder must remain within the media root")
    if not target.is_dir():
        raise NotFoundError(f"Folder not found: {category}/{folder}")
    return target


def collect_folder(media_root: Path, category: str, folder: str, settings) -> List[ArchiveMember]:
    target = resolve_folder(media_root, category, folder, settings)
    members: List[ArchiveMember] = []
    for child in sorted(target.iterdir(), key=lambda p: p.name.casefold()):
        if is_hidden(child.name) or not child.is_file() or media_kind(child.name, settings) is None:
            continue
        members.append((child, f"{target.name}/{child.name}"))
    return members
