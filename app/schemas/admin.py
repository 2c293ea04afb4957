"""Admin-facing schemas."""

from datetime import datetime
from uuid import UUID

from app.schemas.common import APIModel


class ActivityResponse(APIModel):
    """Activity log entry."""

    id: UUID
    user_id: UUID | None
    action: str
    entity_type: str
    entity_id: str
    details: str
    event_metadata: dict[str, str | int | float | None]
    created_at: datetime
