"""
ArtifactGenerator - builds the derived images served in place of originals.

Three kinds of artifact are produced, all WebP and all keyed by
``media_hash(logical_path)``:

* thumbnails: fixed square center crops used by the grid;
* web-optimized renditions: long edge bounded, used as the default display;
* video placeholders: a static tile standing in for a video thumbnail.

Thumbnails and web renditions are regenerated whenever they are older than
their source. Video placeholders do not depend on the source and are built once.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageOps

from eventgallery.core.errors import ArtifactError
from eventgallery.services.identity import media_hash

ARTIFACT_EXT = ".webp"
PLACEHOLDER_BACKGROUND = (32, 32, 36)
PLACEHOLDER_FOREGROUND = (235, 235, 235)

logger = logging.getLogger("eventgallery.artifacts")


def _safe_unlink(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        logger.debug("Failed to remove temp file %s", path, exc_info=True)


def _web_mode(img: Image.Image) -> Image.Image:
    """Convert to a mode the WebP encoder accepts, keeping alpha when present."""
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


class ArtifactGenerator:
    """
    Produces and caches derived artifacts on disk using Pillow.
    """

    def __init__(
        self,
        thumbnails_dir: Path,
        web_dir: Path,
        thumbnail_size: int = 400,
        thumbnail_quality: int = 80,
        web_max_edge: int = 2048,
        web_quality: int = 85,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            thumbnails_dir: Directory holding thumbnails and video placeholders
            web_dir: Directory holding web-optimized renditions
            thumbnail_size: Edge of the square thumbnail crop (default: 400)
            thumbnail_quality: WebP quality for thumbnails (default: 80)
            web_max_edge: Longest edge allowed for web renditions (default: 2048)
            web_quality: WebP quality for web renditions (default: 85)
        """
        self.thumbnails_dir = Path(thumbnails_dir)
        self.web_dir = Path(web_dir)
        self.thumbnail_size = thumbnail_size
        self.thumbnail_quality = thumbnail_quality
        self.web_max_edge = web_max_edge
        self.web_quality = web_quality
        self.logger = logger or logging.getLogger("eventgallery.artifacts")

    @classmethod
    def from_settings(cls, settings) -> "ArtifactGenerator":
        return cls(
            thumbnails_dir=settings.thumbnails_dir,
            web_dir=settings.web_dir,
            thumbnail_size=settings.thumbnail_size,
            thumbnail_quality=settings.thumbnail_quality,
            web_max_edge=settings.web_max_edge,
            web_quality=settings.web_quality,
        )

    def thumbnail_path(self, logical_path: str) -> Path:
        return self.thumbnails_dir / f"{media_hash(logical_path)}{ARTIFACT_EXT}"

    def web_path(self, logical_path: str) -> Path:
        return self.web_dir / f"{media_hash(logical_path)}{ARTIFACT_EXT}"

    def artifact_paths(self, logical_path: str) -> dict[str, Path]:
        return {"thumbnail": self.thumbnail_path(logical_path), "web_optimized": self.web_path(logical_path)}

    @staticmethod
    def is_current(artifact: Path, source: Path) -> bool:
        """An artifact is valid only if it is at least as new as its source."""
        try:
            return artifact.stat().st_mtime >= source.stat().st_mtime
        except FileNotFoundError:
            return False

    def ensure_thumbnail(self, source: Path, logical_path: str) -> Path:
        target = self.thumbnail_path(logical_path)
        if self.is_current(target, source):
            return target
        try:
            with Image.open(source) as img:
                img = _web_mode(ImageOps.exif_transpose(img))
                thumb = ImageOps.fit(
                    img,
                    (self.thumbnail_size, self.thumbnail_size),
                    Image.Resampling.LANCZOS,
                    centering=(0.5, 0.5),
                )
                self._save(thumb, target, self.thumbnail_quality)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ArtifactError(f"Thumbnail failed for {logical_path}: {exc}") from exc
        self.logger.debug("Thumbnail written %s -> %s", logical_path, target.name)
        return target

    def ensure_web_optimized(self, source: Path, logical_path: str) -> Path:
        target = self.web_path(logical_path)
        if self.is_current(target, source):
            return target
        try:
            with Image.open(source) as img:
                img = _web_mode(ImageOps.exif_transpose(img))
                if max(img.size) > self.web_max_edge:
                    # thumbnail() keeps the aspect ratio and never enlarges
                    img.thumbnail((self.web_max_edge, self.web_max_edge), Image.Resampling.LANCZOS)
                self._save(img, target, self.web_quality)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise ArtifactError(f"Web rendition failed for {logical_path}: {exc}") from exc
        self.logger.debug("Web rendition written %s -> %s", logical_path, target.name)
        return target

    def ensure_video_placeholder(self, logical_path: str) -> Path:
        target = self.thumbnail_path(logical_path)
        if target.exists():
            return target
        try:
            self._save(self._placeholder_image(), target, self.thumbnail_quality)
        except OSError as exc:
            raise ArtifactError(f"Placeholder failed for {logical_path}: {exc}") from exc
        self.logger.debug("Video placeholder written %s -> %s", logical_path, target.name)
        return target

    def _placeholder_image(self) -> Image.Image:
        size = self.thumbnail_size
        img = Image.new("RGB", (size, size), PLACEHOLDER_BACKGROUND)
        draw = ImageDraw.Draw(img)
        cx = cy = size // 2
        radius = size // 5
        draw.ellipse(
            (cx - radius, cy - radius, cx + radius, cy + radius),
            outline=PLACEHOLDER_FOREGROUND,
            width=max(2, size // 80),
        )
        draw.polygon(
            [
                (cx - radius * 0.35, cy - radius * 0.5),
                (cx - radius * 0.35, cy + radius * 0.5),
                (cx + radius * 0.55, cy),
            ],
            fill=PLACEHOLDER_FOREGROUND,
        )
        return img

    def _save(self, img: Image.Image, target: Path, quality: int):
        """Encode to a temp file beside the target, then swap it in."""
        target.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            delete=False,
            dir=target.parent,
            prefix=f"{target.stem}_",
            suffix=".tmp",
        )
        handle.close()
        temp_path = Path(handle.name)
        try:
            img.save(temp_path, format="WEBP", quality=quality)
            os.replace(temp_path, target)
        finally:
            _safe_unlink(temp_path)
