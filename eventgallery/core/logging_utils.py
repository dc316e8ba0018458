import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, List, Optional

LOG_FORMAT = "[%(levelname)s] %(asctime)s %(name)s :: %(message)s"
LOG_FILE = "eventgallery.log"
DEBUG_LOG_FILE = "eventgallery-debug.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# third-party loggers that are chatty at DEBUG
QUIET_LOGGERS = ("PIL", "aiosqlite", "multipart", "python_multipart")

_state = {"configured": False, "debug": False}


def log_paths(config_root: Path) -> Dict[str, Path]:
    log_dir = Path(config_root) / "logs"
    return {"info": log_dir / LOG_FILE, "debug": log_dir / DEBUG_LOG_FILE}


def _file_handler(path: Path, level: int) -> Optional[logging.Handler]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    except OSError as exc:  # pragma: no cover - startup-only path
        print(f"[EventGallery] Could not open log file {path}: {exc}", file=sys.stderr)
        return None
    handler.setLevel(level)
    return handler


def setup_logging(config_root: Path, debug_enabled: bool = False):
    """
    Log to stderr and {config_root}/logs/eventgallery.log; in debug mode also to
    eventgallery-debug.log. Calling again with the same debug flag is a no-op.
    """
    if _state["configured"] and _state["debug"] == debug_enabled:
        return
    root_level = logging.DEBUG if debug_enabled else logging.INFO
    paths = log_paths(config_root)

    console = logging.StreamHandler()
    console.setLevel(root_level)
    handlers: List[logging.Handler] = [console]
    for path, level, wanted in (
        (paths["info"], logging.INFO, True),
        (paths["debug"], logging.DEBUG, debug_enabled),
    ):
        handler = _file_handler(path, level) if wanted else None
        if handler is not None:
            handlers.append(handler)

    logging.basicConfig(level=root_level, format=LOG_FORMAT, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO)
    _state.update(configured=True, debug=debug_enabled)


def reconfigure_logging(config_root: Path, debug_enabled: bool):
    """Rebuild the handlers after the debug toggle changes."""
    _state["configured"] = False
    setup_logging(config_root, debug_enabled)
