import threading
import time
from typing import Any, Dict, Optional

_lock = threading.Lock()
_tasks: Dict[str, Dict[str, Any]] = {}


def begin(task: str, total: Optional[int] = None, message: Optional[str] = None):
    now = time.time()
    with _lock:
        _tasks[task] = {
            "state": "running",
            "message": message or task.capitalize(),
            "done": 0,
            "total": total,
            "progress": 0.0 if total else None,
            "meta": {},
            "started_at": now,
            "updated_at": now,
        }


def advance(task: str, step: int = 1):
    with _lock:
        entry = _tasks.get(task)
        if entry is None:
            return
        entry["done"] += step
        if entry["total"]:
            entry["progress"] = min(1.0, entry["done"] / entry["total"])
        entry["updated_at"] = time.time()


def finish(task: str, message: Optional[str] = None, meta: Optional[Dict[str, Any]] = None, failed: bool = False):
    with _lock:
        entry = _tasks.setdefault(task, {"done": 0, "total": None, "started_at": time.time()})
        entry.update(
            {
                "state": "failed" if failed else "standby",
                "message": message or "Idle",
                "progress": None,
                "meta": meta or {},
                "updated_at": time.time(),
            }
        )


def get_status() -> Dict[str, Dict[str, Any]]:
    with _lock:
        return {name: dict(entry) for name, entry in _tasks.items()}
