from collections import deque
from pathlib import Path
from typing import Literal

from fastapi import APIRouter, Depends, Query

from eventgallery.core.auth import require_admin
from eventgallery.core.logging_utils import log_paths, reconfigure_logging
from eventgallery.services.context import GalleryContext, get_context

router = APIRouter(prefix="/admin/logs", tags=["logs"], dependencies=[Depends(require_admin)])


def _tail(path: Path, lines: int) -> list[str]:
    if not path.exists():
        return []
    buf: deque[str] = deque(maxlen=lines)
    with path.open("r", encoding="utf-8", errors="ignore") as fh:
        for line in fh:
            buf.append(line.rstrip("\n"))
    return list(buf)


@router.get("")
async def read_logs(
    level: Literal["info", "debug"] = Query(default="info"),
    lines: int = Query(default=200, ge=1, le=1000),
    ctx: GalleryContext = Depends(get_context),
):
    path = log_paths(Path(ctx.settings.config_root))[level]
    return {
        "path": str(path),
        "level": level,
        "exists": path.exists(),
        "lines": _tail(path, lines),
    }


@router.post("/debug")
async def toggle_debug_logging(enabled: bool = Query(...), ctx: GalleryContext = Depends(get_context)):
    ctx.settings.debug_logging = enabled
    reconfigure_logging(Path(ctx.settings.config_root), enabled)
    await ctx.record("INFO", "debug_logging", f"Debug logging {'enabled' if enabled else 'disabled'}")
    return {"debug_logging": enabled}
