"""Admin routes."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.audit import ActivityLog
from app.schemas.admin import ActivityResponse
from app.schemas.common import Envelope
from app.services.auth import CallerContext, require_staff

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.get("/activity", response_model=Envelope[list[ActivityResponse]])
async def list_activity(
    _: CallerContext = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Envelope[list[ActivityResponse]]:
    """List activity log entries, newest first."""
    result = await session.execute(
        select(ActivityLog)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return Envelope(
        data=[ActivityResponse.model_validate(row) for row in result.scalars().all()]
    )
