import asyncio
import logging
from pathlib import Path

from eventgallery.api.schemas import CleanResult, CleanStats, OptimizeStats
from eventgallery.core.errors import ArtifactError
from eventgallery.services import status_service
from eventgallery.services.artifact_service import ARTIFACT_EXT, ArtifactGenerator
from eventgallery.services.identity import media_hash
from eventgallery.services.scan_service import FileEntry, collect_media

logger = logging.getLogger("eventgallery.optimize")


def _optimize_one(entry: FileEntry, generator: ArtifactGenerator) -> str:
    logical = entry.logical_path
    if generator.is_current(generator.web_path(logical), entry.path):
        return "already"
    try:
        generator.ensure_web_optimized(entry.path, logical)
        generator.ensure_thumbnail(entry.path, logical)
    except ArtifactError as exc:
        logger.warning("Optimize failed: %s", exc)
        return "error"
    return "optimized"


async def optimize_all(media_root: Path, generator: ArtifactGenerator, settings) -> OptimizeStats:
    """Pre-generate web renditions and thumbnails for every published image."""
    entries = [e for e in await asyncio.to_thread(collect_media, Path(media_root), settings) if e.kind == "image"]
    stats = OptimizeStats(total=len(entries))
    status_service.begin("optimize", total=len(entries), message="Optimizing images")
    semaphore = asyncio.Semaphore(max(1, settings.artifact_workers))

    async def _run(entry: FileEntry) -> str:
        async with semaphore:
            outcome = await asyncio.to_thread(_optimize_one, entry, generator)
        status_service.advance("optimize")
        return outcome

    try:
        outcomes = await asyncio.gather(*(_run(e) for e in entries))
    except Exception:
        status_service.finish("optimize", message="Optimize failed", failed=True)
        raise
    stats.optimized = outcomes.count("optimized")
    stats.already_optimized = outcomes.count("already")
    stats.errors = outcomes.count("error")
    status_service.finish("optimize", message="Idle", meta=stats.model_dump())
    logger.info(
        "Optimize complete: %s images, %s optimized, %s already current, %s errors",
        stats.total,
        stats.optimized,
        stats.already_optimized,
        stats.errors,
    )
    return stats


def _sweep(directory: Path, valid: set[str]) -> CleanStats:
    stats = CleanStats()
    if not directory.is_dir():
        return stats
    for path in directory.iterdir():
        if not path.is_file() or path.suffix != ARTIFACT_EXT:
            continue
        stats.total += 1
        if path.stem in valid:
            stats.kept += 1
            continue
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        stats.deleted += 1
        logger.debug("Removed orphaned artifact %s", path)
    return stats


def clean_cache(media_root: Path, generator: ArtifactGenerator, settings) -> CleanResult:
    """Delete artifacts whose key no longer matches any published media file."""
    valid = {media_hash(entry.logical_path) for entry in collect_media(Path(media_root), settings)}
    result = CleanResult(
        thumbnails=_sweep(generator.thumbnails_dir, valid),
        web_optimized=_sweep(generator.web_dir, valid),
    )
    logger.info(
        "Cache clean: removed %s thumbnail(s) and %s web rendition(s)",
        result.thumbnails.deleted,
        result.web_optimized.deleted,
    )
    return result
