"""Equipment request routes."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.enums import RequestStatus
from app.routers.dependencies import commit_session
from app.schemas.common import Envelope
from app.schemas.requests import (
    RequestCreate,
    RequestHistoryResponse,
    RequestResponse,
    RequestTransition,
    TransitionResponse,
)
from app.services import clock
from app.services.auth import CallerContext, require_admin, require_caller
from app.services.requests import (
    create_request,
    delete_request,
    get_request_for_caller,
    list_current_requests,
    list_request_history,
    transition_request,
)

router = APIRouter(prefix="/v1/requests", tags=["requests"])


@router.post("", response_model=Envelope[RequestResponse])
async def create_request_route(
    payload: RequestCreate,
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[RequestResponse]:
    """Submit a request for equipment."""
    request = await create_request(
        session,
        caller,
        item_id=payload.item_id,
        quantity=payload.quantity,
        needed_by=payload.needed_by,
        notes=payload.notes,
    )
    await commit_session(session)
    return Envelope(
        message="Request submitted successfully",
        data=RequestResponse.build(request, None),
    )


@router.put("", response_model=Envelope[TransitionResponse])
async def transition_request_route(
    payload: RequestTransition,
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[TransitionResponse]:
    """Approve, reject or cancel a request.

    Approval returns the authorization code to relay to the student.
    """
    transition = await transition_request(
        session,
        caller,
        request_id=payload.id,
        new_status=RequestStatus(payload.status),
        expiry_hours=payload.expiry_hours,
    )
    await commit_session(session)
    code = transition.code
    return Envelope(
        message=f"Request {payload.status} successfully",
        data=TransitionResponse(
            request=RequestResponse.build(transition.request, code),
            authorization_code=code.code if code else None,
            expires_at=clock.as_utc(code.expires_at) if code else None,
        ),
    )


@router.get("", response_model=Envelope[list[RequestResponse]])
async def list_requests(
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
) -> Envelope[list[RequestResponse]]:
    """List pending and approved requests."""
    rows = await list_current_requests(session, caller, search=search, limit=limit)
    return Envelope(
        data=[RequestResponse.build(request, code) for request, code in rows]
    )


@router.get("/history", response_model=Envelope[list[RequestHistoryResponse]])
async def request_history(
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
    status: RequestStatus | None = None,
    user_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Envelope[list[RequestHistoryResponse]]:
    """Search requests in every status."""
    entries = await list_request_history(
        session,
        caller,
        status=status,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
        limit=limit,
        offset=offset,
    )
    return Envelope(
        data=[
            RequestHistoryResponse.build_history(
                entry.request, entry.code, entry.checkout
            )
            for entry in entries
        ]
    )


@router.get("/{request_id}", response_model=Envelope[RequestResponse])
async def get_request(
    request_id: UUID,
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[RequestResponse]:
    """Return one request."""
    request, code = await get_request_for_caller(session, caller, request_id)
    return Envelope(data=RequestResponse.build(request, code))


@router.delete("/{request_id}", response_model=Envelope[None])
async def delete_request_route(
    request_id: UUID,
    caller: CallerContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Envelope[None]:
    """Delete a request that never produced a code."""
    await delete_request(session, caller, request_id)
    await commit_session(session)
    return Envelope(message="Request deleted")
