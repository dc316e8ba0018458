from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from eventgallery.api.schemas import ActivityOut
from eventgallery.core.auth import require_admin
from eventgallery.core.db import get_session
from eventgallery.services.activity_service import fetch_recent_activity

router = APIRouter(prefix="/admin/activity", tags=["activity"], dependencies=[Depends(require_admin)])

@router.get("", response_model=list[ActivityOut])
async def recent_activity(
    limit: int = Query(default=50, ge=1, le=500),
    action: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
):
    return await fetch_recent_activity(session, limit=limit, action=action)
