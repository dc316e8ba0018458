import hashlib
from pathlib import Path
from typing import Iterable, Optional

from eventgallery.core.errors import ValidationError


def media_hash(logical_path: str) -> str:
    """Cache key for a logical media path; a digest of the path string, not the file bytes."""
    return hashlib.sha1(logical_path.encode("utf-8")).hexdigest()


def logical_path(category: str, folder: str, name: str) -> str:
    return f"{category}/{folder}/{name}"


def _ext_in_list(name: str, options: Iterable[str]) -> bool:
    return Path(name).suffix.lower().lstrip(".") in {ext.lower().lstrip(".") for ext in options}


def media_kind(name: str, settings) -> Optional[str]:
    """Return 'image', 'video' or None from the configured extension allow-lists."""
    if _ext_in_list(name, settings.image_extensions):
        return "image"
    if _ext_in_list(name, settings.video_extensions):
        return "video"
    return None


def is_archive(name: str, settings) -> bool:
    return _ext_in_list(name, settings.archive_extensions)


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def validate_segment(name: str, settings, label: str = "name") -> str:
    """A single category or folder name: no separators, no dot entries, never the pending area."""
    cleaned = (name or "").strip()
    if not cleaned or "/" in cleaned or "\\" in cleaned or cleaned in {".", ".."} or is_hidden(cleaned):
        raise ValidationError(f"Invalid {label}: {name!r}")
    if cleaned.casefold() == settings.pending_dir_name.casefold():
        raise ValidationError(f"The {settings.pending_dir_name} area is reserved")
    return cleaned
