import json
import logging
from typing import Any, Sequence

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventgallery.core import models
from eventgallery.core.db import SessionLocal
from eventgallery.worker.jobs import get_current_job_id

logger = logging.getLogger("eventgallery.activity")
_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


async def log_activity(session: AsyncSession, level: str, action: str, message: str, payload: Any | None = None):
    payload_obj = payload or {}
    if not isinstance(payload_obj, dict):
        payload_obj = {"data": payload_obj}
    job_id = payload_obj.get("job_id") or get_current_job_id()
    if job_id:
        payload_obj["job_id"] = job_id
    payload_json = json.dumps(payload_obj, default=str)
    session.add(models.Activity(level=level.upper(), action=action, message=message, payload_json=payload_json))
    await session.commit()
    logger.log(_LEVELS.get(level.upper(), logging.INFO), "%s :: %s", message, payload_json)


async def record_activity(level: str, action: str, message: str, payload: Any | None = None):
    """Append an audit entry in its own session. Audit failures never fail the caller."""
    try:
        async with SessionLocal() as session:
            await log_activity(session, level, action, message, payload)
    except Exception:
        logger.error("Could not record activity %s: %s", action, message, exc_info=True)


async def fetch_recent_activity(session: AsyncSession, limit: int = 100, action: str | None = None) -> Sequence[models.Activity]:
    stmt = select(models.Activity)
    if action:
        stmt = stmt.where(models.Activity.action == action)
    stmt = stmt.order_by(desc(models.Activity.ts)).limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()
