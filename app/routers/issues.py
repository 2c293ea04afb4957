"""Issue report routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.enums import IssueStatus
from app.routers.dependencies import commit_session
from app.schemas.common import Envelope
from app.schemas.issues import IssueCreate, IssueResponse
from app.services.auth import CallerContext, require_caller, require_staff
from app.services.issues import list_issues, report_issue, resolve_issue

router = APIRouter(prefix="/v1/issues", tags=["issues"])


@router.post("", response_model=Envelope[IssueResponse])
async def report_issue_route(
    payload: IssueCreate,
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[IssueResponse]:
    """Report a problem with an item."""
    issue = await report_issue(
        session,
        caller,
        item_id=payload.item_id,
        issue_type=payload.type,
        severity=payload.severity,
        description=payload.description,
    )
    await commit_session(session)
    return Envelope(
        message="Issue reported successfully", data=IssueResponse.build(issue)
    )


@router.get("", response_model=Envelope[list[IssueResponse]])
async def list_issues_route(
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
    status: IssueStatus | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Envelope[list[IssueResponse]]:
    """List issue reports."""
    issues = await list_issues(
        session, caller, status=status, limit=limit, offset=offset
    )
    return Envelope(data=[IssueResponse.build(row) for row in issues])


@router.put("/{issue_id}/resolve", response_model=Envelope[IssueResponse])
async def resolve_issue_route(
    issue_id: UUID,
    caller: CallerContext = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
) -> Envelope[IssueResponse]:
    """Mark an issue resolved."""
    issue = await resolve_issue(session, caller, issue_id)
    await commit_session(session)
    return Envelope(message="Issue resolved", data=IssueResponse.build(issue))
