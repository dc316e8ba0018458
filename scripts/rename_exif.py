"""
Prefix gallery images with their capture time, e.g. ``20250614-153012-IMG_0042.jpg``,
so that name order matches shooting order. Run once on a folder tree before
publishing; files already carrying a prefix are left alone and existing files
are never overwritten.

    python scripts/rename_exif.py media/ --dry-run
"""
import argparse
import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from PIL import ExifTags, Image, UnidentifiedImageError

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from eventgallery.core.config import settings as env_settings  # noqa: E402
from eventgallery.services.identity import is_hidden, media_kind  # noqa: E402

PREFIX = re.compile(r"^\d{8}-\d{6}-")
EXIF_FORMAT = "%Y:%m:%d %H:%M:%S"

logger = logging.getLogger("eventgallery.rename_exif")


def capture_time(path: Path) -> Optional[datetime]:
    """DateTimeOriginal, then DateTimeDigitized, then DateTime."""
    try:
        with Image.open(path) as img:
            exif = img.getexif()
    except (OSError, UnidentifiedImageError):
        return None
    sub = exif.get_ifd(ExifTags.IFD.Exif)
    candidates = (
        sub.get(ExifTags.Base.DateTimeOriginal),
        sub.get(ExifTags.Base.DateTimeDigitized),
        exif.get(ExifTags.Base.DateTime),
    )
    for raw in candidates:
        if not raw:
            continue
        try:
            return datetime.strptime(str(raw).strip("\x00 "), EXIF_FORMAT)
        except ValueError:
            continue
    return None


def prefixed_name(name: str, taken: datetime) -> str:
    return f"{taken:%Y%m%d-%H%M%S}-{name}"


def rename_tree(root: Path, dry_run: bool = False) -> dict:
    stats = {"renamed": 0, "skipped": 0, "no_date": 0, "conflicts": 0}
    for path in sorted(root.rglob("*")):
        if not path.is_file() or any(is_hidden(p) for p in path.relative_to(root).parts):
            continue
        if media_kind(path.name, env_settings) != "image":
            continue
        if PREFIX.match(path.name):
            stats["skipped"] += 1
            continue
        taken = capture_time(path)
        if taken is None:
            stats["no_date"] += 1
            logger.debug("No EXIF date in %s", path)
            continue
        target = path.with_name(prefixed_name(path.name, taken))
        if target.exists():
            stats["conflicts"] += 1
            logger.warning("Not renaming %s: %s already exists", path, target.name)
            continue
        if not dry_run:
            path.rename(target)
        stats["renamed"] += 1
        logger.info("%s %s -> %s", "Would rename" if dry_run else "Renamed", path.name, target.name)
    return stats


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Prefix images with their EXIF capture time.")
    parser.add_argument("root", nargs="?", default=env_settings.media_root)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s %(name)s :: %(message)s")

    root = Path(args.root)
    if not root.is_dir():
        logger.error("Not a directory: %s", root)
        return 1
    stats = rename_tree(root, dry_run=args.dry_run)
    logger.info(
        "Done: %s renamed, %s already prefixed, %s without date, %s conflicts",
        stats["renamed"],
        stats["skipped"],
        stats["no_date"],
        stats["conflicts"],
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
