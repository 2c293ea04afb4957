"""Equipment issue reports."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.errors import AuthorizationError, NotFoundError, StateConflictError
from app.models.enums import IssueSeverity, IssueStatus, IssueType
from app.models.issue import Issue
from app.services import clock
from app.services.audit import log_event
from app.services.auth import CallerContext
from app.services.inventory import get_item

logger = logging.getLogger(__name__)


async def report_issue(
    session: AsyncSession,
    caller: CallerContext,
    *,
    item_id: UUID,
    issue_type: IssueType,
    severity: IssueSeverity,
    description: str,
) -> Issue:
    """Report a problem with an item.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Reporting user.
    item_id : UUID
        Affected item.
    issue_type : IssueType
        Kind of problem.
    severity : IssueSeverity
        Reported severity.
    description : str
        Free-text description.

    Returns
    -------
    Issue
        New open issue.
    """
    item = await get_item(session, item_id)
    issue = Issue(
        item_id=item.id,
        user_id=caller.user_id,
        type=issue_type.value,
        severity=severity.value,
        description=description,
        status=IssueStatus.OPEN.value,
    )
    session.add(issue)
    await session.flush()
    await session.refresh(issue, attribute_names=["item", "user"])
    await log_event(
        session,
        user_id=caller.user_id,
        action="issue_reported",
        entity_type="issues",
        entity_id=str(issue.id),
        details=f"{severity.value} {issue_type.value} issue on {item.name}",
    )
    logger.info("Issue %s reported on item %s", issue.id, item.id)
    return issue


async def list_issues(
    session: AsyncSession,
    caller: CallerContext,
    *,
    status: IssueStatus | None,
    limit: int,
    offset: int,
) -> list[Issue]:
    """List issues; non-staff callers only see their own reports."""
    query = select(Issue).options(selectinload(Issue.item), selectinload(Issue.user))
    if not caller.is_staff:
        query = query.where(Issue.user_id == caller.user_id)
    if status is not None:
        query = query.where(Issue.status == status.value)
    result = await session.execute(
        query.order_by(Issue.created_at.desc(), Issue.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def resolve_issue(
    session: AsyncSession, caller: CallerContext, issue_id: UUID
) -> Issue:
    """Mark an open issue resolved.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting staff member.
    issue_id : UUID
        Issue identifier.

    Returns
    -------
    Issue
        Resolved issue.
    """
    if not caller.is_staff:
        raise AuthorizationError()
    issue = await session.get(Issue, issue_id)
    if issue is None:
        raise NotFoundError("Issue not found")
    result = await session.execute(
        update(Issue)
        .where(Issue.id == issue_id, Issue.status == IssueStatus.OPEN.value)
        .values(status=IssueStatus.RESOLVED.value, resolved_at=clock.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError("Issue already resolved")
    await session.refresh(
        issue, attribute_names=["status", "resolved_at", "item", "user"]
    )
    await log_event(
        session,
        user_id=caller.user_id,
        action="issue_resolved",
        entity_type="issues",
        entity_id=str(issue.id),
    )
    return issue
