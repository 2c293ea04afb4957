"""Issue report schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.enums import IssueSeverity, IssueStatus, IssueType
from app.models.issue import Issue
from app.schemas.common import APIModel


class IssueCreate(BaseModel):
    """Report a problem with an item."""

    item_id: UUID
    type: IssueType
    severity: IssueSeverity = IssueSeverity.MEDIUM
    description: str = Field(min_length=1, max_length=1000)


class IssueResponse(APIModel):
    """Reported issue."""

    id: UUID
    item_id: UUID
    item_name: str
    user_id: UUID
    user_name: str
    type: IssueType
    severity: IssueSeverity
    description: str
    status: IssueStatus
    date_reported: datetime
    resolved_at: datetime | None

    @classmethod
    def build(cls, issue: Issue) -> "IssueResponse":
        """Flatten an issue row with its loaded relationships."""
        return cls(
            id=issue.id,
            item_id=issue.item_id,
            item_name=issue.item.name,
            user_id=issue.user_id,
            user_name=issue.user.full_name,
            type=issue.type,
            severity=issue.severity,
            description=issue.description,
            status=issue.status,
            date_reported=issue.created_at,
            resolved_at=issue.resolved_at,
        )
