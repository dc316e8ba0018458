import logging
import threading
import traceback
from typing import Any, Callable, Optional

from .queue import Job, enqueue_job, get_result, get_status, job_queue, set_status

logger = logging.getLogger("eventgallery.worker")
_job_ctx = threading.local()
_worker: Optional[threading.Thread] = None
_worker_lock = threading.Lock()


def get_current_job_id() -> Optional[str]:
    return getattr(_job_ctx, "job_id", None)


def _as_payload(value: Any) -> Any:
    return value.model_dump() if hasattr(value, "model_dump") else value


def _run_job(job: Job):
    set_status(job.id, "running")
    logger.debug("Worker starting job %s (%s)", job.id, job.name)
    _job_ctx.job_id = job.id
    try:
        result = job.fn()
    except Exception:
        set_status(job.id, "failed", {"error": traceback.format_exc(limit=3)})
        logger.error("Job %s (%s) failed: %s", job.id, job.name, traceback.format_exc())
    else:
        set_status(job.id, "done", _as_payload(result))
        logger.info("Job %s (%s) completed", job.id, job.name)
    finally:
        _job_ctx.job_id = None


def _loop():
    while True:
        job = job_queue.get()
        try:
            _run_job(job)
        finally:
            job_queue.task_done()


def start_worker():
    """Start the single background worker thread (idempotent)."""
    global _worker
    with _worker_lock:
        if _worker is not None and _worker.is_alive():
            return
        _worker = threading.Thread(target=_loop, name="eventgallery-worker", daemon=True)
        _worker.start()
    logger.info("Worker started")


def enqueue(name: str, fn: Callable[[], Any]) -> str:
    return enqueue_job(name, fn)


def job_status(job_id: str) -> Optional[str]:
    return get_status(job_id)


def job_result(job_id: str) -> Any:
    return get_result(job_id)
