import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger("eventgallery.worker")

MAX_FINISHED_JOBS = 50


@dataclass
class Job:
    id: str
    name: str
    fn: Callable[[], Any]
    status: str = "queued"
    result: Any = None
    queued_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None


job_queue: "queue.Queue[Job]" = queue.Queue()
_jobs: Dict[str, Job] = {}
_lock = threading.Lock()


def _prune_finished():
    finished = [j for j in _jobs.values() if j.finished_at is not None]
    if len(finished) <= MAX_FINISHED_JOBS:
        return
    finished.sort(key=lambda j: j.finished_at)
    for job in finished[: len(finished) - MAX_FINISHED_JOBS]:
        _jobs.pop(job.id, None)


def enqueue_job(name: str, fn: Callable[[], Any]) -> str:
    job = Job(id=str(uuid4()), name=name, fn=fn)
    with _lock:
        _jobs[job.id] = job
    job_queue.put(job)
    logger.debug("Enqueued job %s (%s)", job.id, name)
    return job.id


def set_status(job_id: str, status: str, result: Any = None):
    with _lock:
        job = _jobs.get(job_id)
        if job is None:
            return
        job.status = status
        if status in ("done", "failed"):
            job.result = result
            job.finished_at = time.time()
            _prune_finished()


def get_status(job_id: str) -> Optional[str]:
    with _lock:
        job = _jobs.get(job_id)
        return job.status if job else None


def get_result(job_id: str) -> Any:
    with _lock:
        job = _jobs.get(job_id)
        return job.result if job else None


def running_jobs() -> List[str]:
    with _lock:
        return [j.id for j in _jobs.values() if j.status == "running"]


def describe_jobs() -> List[Dict[str, Any]]:
    with _lock:
        jobs = sorted(_jobs.values(), key=lambda j: j.queued_at, reverse=True)
        return [
            {"job_id": j.id, "name": j.name, "status": j.status, "queued_at": j.queued_at, "finished_at": j.finished_at}
            for j in jobs
        ]
