"""Activity logging service."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import ActivityLog

logger = logging.getLogger(__name__)


async def log_event(
    session: AsyncSession,
    *,
    user_id: UUID | None,
    action: str,
    entity_type: str,
    entity_id: str,
    details: str = "",
    metadata: dict[str, str | int | float | None] | None = None,
) -> ActivityLog | None:
    """Persist an activity entry without risking the caller's transaction.

    The insert runs inside a savepoint. If the store rejects it, the
    savepoint is rolled back, the failure is logged and ``None`` is returned.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    user_id : UUID | None
        Acting user.
    action : str
        Event action.
    entity_type : str
        Kind of entity touched.
    entity_id : str
        String entity identifier.
    details : str, default=""
        Human-readable description.
    metadata : dict[str, str | int | float | None] | None, default=None
        Additional structured data.

    Returns
    -------
    ActivityLog | None
        Persisted entry, or ``None`` when logging failed.
    """
    try:
        async with session.begin_nested():
            event = ActivityLog(
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details,
                event_metadata=metadata or {},
            )
            session.add(event)
    except SQLAlchemyError:
        logger.warning(
            "Activity logging failed for %s on %s %s",
            action,
            entity_type,
            entity_id,
            exc_info=True,
        )
        return None
    return event
