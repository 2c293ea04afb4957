"""Equipment request lifecycle.

``pending`` requests are approved, rejected or cancelled here. Approval
mints the authorization code in the same transaction; inventory is only
withdrawn later, when that code is redeemed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import get_settings
from app.errors import (
    AuthorizationError,
    InsufficientInventoryError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models.authorization import AuthorizationCode
from app.models.checkout import Checkout
from app.models.enums import ItemStatus, RequestStatus
from app.models.inventory import InventoryItem
from app.models.request import EquipmentRequest
from app.models.token import User
from app.services.audit import log_event
from app.services.auth import CallerContext
from app.services.codes import (
    cancel_codes_for_request,
    issue_code,
    latest_codes_for_requests,
)
from app.services.inventory import get_item

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (RequestStatus.PENDING.value, RequestStatus.APPROVED.value)


@dataclass(frozen=True, slots=True)
class Transition:
    """Request after a status change, with the code approval produced."""

    request: EquipmentRequest
    code: AuthorizationCode | None


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """Request with its latest code and resulting checkout."""

    request: EquipmentRequest
    code: AuthorizationCode | None
    checkout: Checkout | None


async def create_request(
    session: AsyncSession,
    caller: CallerContext,
    *,
    item_id: UUID,
    quantity: int,
    needed_by: date,
    notes: str,
) -> EquipmentRequest:
    """Record a student's request for equipment.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Requesting student.
    item_id : UUID
        Requested item.
    quantity : int
        Units requested.
    needed_by : date
        Date the equipment is needed; also the checkout due date.
    notes : str
        Purpose of the request.

    Returns
    -------
    EquipmentRequest
        New pending request.
    """
    if not caller.is_student:
        raise AuthorizationError("Only students can make requests")
    limit = get_settings().max_request_quantity
    if quantity > limit:
        raise ValidationError(f"Quantity must be between 1 and {limit}")
    item = await get_item(session, item_id)
    if item.status != ItemStatus.AVAILABLE.value:
        raise StateConflictError("Item is no longer available")

    request = EquipmentRequest(
        item_id=item.id,
        user_id=caller.user_id,
        quantity=quantity,
        needed_by=needed_by,
        notes=notes,
        status=RequestStatus.PENDING.value,
    )
    session.add(request)
    await session.flush()
    await session.refresh(request, attribute_names=["item", "user"])
    await log_event(
        session,
        user_id=caller.user_id,
        action="request_created",
        entity_type="requests",
        entity_id=str(request.id),
        details=f"Requested {quantity} unit(s) of {item.name}",
        metadata={"item_id": str(item.id), "quantity": quantity},
    )
    logger.info("Request %s created for item %s", request.id, item.id)
    return request


async def transition_request(
    session: AsyncSession,
    caller: CallerContext,
    *,
    request_id: UUID,
    new_status: RequestStatus,
    expiry_hours: int | None = None,
) -> Transition:
    """Move a request to ``approved``, ``rejected`` or ``cancelled``.

    Students may cancel their own pending requests. Staff decide pending
    requests and may also cancel approved ones, which cancels the
    outstanding code.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user.
    request_id : UUID
        Request identifier.
    new_status : RequestStatus
        Target status.
    expiry_hours : int | None, default=None
        Lifetime of the code minted on approval.

    Returns
    -------
    Transition
        Updated request and the code minted on approval.
    """
    request = await _get_request(session, request_id)
    current = RequestStatus(request.status)

    if new_status == RequestStatus.CANCELLED:
        if caller.is_student:
            if request.user_id != caller.user_id:
                raise AuthorizationError("Unauthorized to cancel this request")
            if current != RequestStatus.PENDING:
                raise StateConflictError("Can only cancel pending requests")
        elif current.value not in _OPEN_STATUSES:
            raise StateConflictError(f"Cannot cancel a {current.value} request")
    elif new_status in (RequestStatus.APPROVED, RequestStatus.REJECTED):
        if not caller.is_staff:
            raise AuthorizationError("Unauthorized to update request status")
        if current != RequestStatus.PENDING:
            raise StateConflictError(
                f"Only pending requests can be {new_status.value}"
            )
    else:
        raise ValidationError("Invalid status")

    if new_status == RequestStatus.APPROVED:
        item = await get_item(session, request.item_id)
        if item.quantity < request.quantity:
            raise InsufficientInventoryError(
                f"Insufficient inventory. Available: {item.quantity}, "
                f"Requested: {request.quantity}"
            )

    result = await session.execute(
        update(EquipmentRequest)
        .where(
            EquipmentRequest.id == request.id,
            EquipmentRequest.status == current.value,
        )
        .values(status=new_status.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError("Request was updated by someone else")
    await session.refresh(request, attribute_names=["status", "item", "user"])

    code = None
    if new_status == RequestStatus.APPROVED:
        code = await issue_code(
            session, caller, request=request, expiry_hours=expiry_hours
        )
    elif current == RequestStatus.APPROVED:
        await cancel_codes_for_request(
            session, request_id=request.id, reason="Request cancelled"
        )

    await log_event(
        session,
        user_id=caller.user_id,
        action="request_status_update",
        entity_type="requests",
        entity_id=str(request.id),
        details=f"Request {request.id} {current.value} -> {new_status.value}",
        metadata={"from": current.value, "to": new_status.value},
    )
    logger.info(
        "Request %s moved from %s to %s", request.id, current.value, new_status.value
    )
    return Transition(request=request, code=code)


async def get_request_for_caller(
    session: AsyncSession, caller: CallerContext, request_id: UUID
) -> tuple[EquipmentRequest, AuthorizationCode | None]:
    """Return one request with its latest code.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user; students may only read their own requests.
    request_id : UUID
        Request identifier.

    Returns
    -------
    tuple[EquipmentRequest, AuthorizationCode | None]
        Request and its most recent code.
    """
    result = await session.execute(
        select(EquipmentRequest)
        .options(
            selectinload(EquipmentRequest.item), selectinload(EquipmentRequest.user)
        )
        .where(EquipmentRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError("Request not found")
    if caller.is_student and request.user_id != caller.user_id:
        raise AuthorizationError("Unauthorized")
    codes = await latest_codes_for_requests(session, [request.id])
    return request, codes.get(request.id)


async def list_current_requests(
    session: AsyncSession,
    caller: CallerContext,
    *,
    search: str | None,
    limit: int,
) -> list[tuple[EquipmentRequest, AuthorizationCode | None]]:
    """List pending and approved requests with their latest code.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user; students only see their own.
    search : str | None
        Item name fragment.
    limit : int
        Maximum rows.

    Returns
    -------
    list[tuple[EquipmentRequest, AuthorizationCode | None]]
        Requests, newest first.
    """
    query = (
        select(EquipmentRequest)
        .join(InventoryItem, InventoryItem.id == EquipmentRequest.item_id)
        .options(
            selectinload(EquipmentRequest.item), selectinload(EquipmentRequest.user)
        )
        .where(EquipmentRequest.status.in_(_OPEN_STATUSES))
    )
    if caller.is_student:
        query = query.where(EquipmentRequest.user_id == caller.user_id)
    if search:
        query = query.where(InventoryItem.name.ilike(f"%{search}%"))
    result = await session.execute(
        query.order_by(EquipmentRequest.created_at.desc(), EquipmentRequest.id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    requests = list(result.scalars().all())
    codes = await latest_codes_for_requests(session, [row.id for row in requests])
    return [(row, codes.get(row.id)) for row in requests]


async def list_request_history(
    session: AsyncSession,
    caller: CallerContext,
    *,
    status: RequestStatus | None = None,
    user_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[HistoryEntry]:
    """Search every request regardless of status.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user; students are pinned to their own history.
    status : RequestStatus | None, default=None
        Status filter.
    user_id : UUID | None, default=None
        Requester filter.
    date_from : date | None, default=None
        Inclusive creation date lower bound.
    date_to : date | None, default=None
        Inclusive creation date upper bound.
    search : str | None, default=None
        Item or requester name fragment.
    limit : int, default=50
        Page size.
    offset : int, default=0
        Page offset.

    Returns
    -------
    list[HistoryEntry]
        Requests with their latest code and checkout.
    """
    if caller.is_student:
        if user_id is not None and user_id != caller.user_id:
            raise AuthorizationError("Unauthorized")
        user_id = caller.user_id

    query = (
        select(EquipmentRequest)
        .join(InventoryItem, InventoryItem.id == EquipmentRequest.item_id)
        .join(User, User.id == EquipmentRequest.user_id)
        .options(
            selectinload(EquipmentRequest.item), selectinload(EquipmentRequest.user)
        )
    )
    if status is not None:
        query = query.where(EquipmentRequest.status == status.value)
    if user_id is not None:
        query = query.where(EquipmentRequest.user_id == user_id)
    if date_from is not None:
        query = query.where(EquipmentRequest.created_at >= _start_of(date_from))
    if date_to is not None:
        query = query.where(
            EquipmentRequest.created_at < _start_of(date_to + timedelta(days=1))
        )
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                InventoryItem.name.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            )
        )
    result = await session.execute(
        query.order_by(EquipmentRequest.created_at.desc(), EquipmentRequest.id.desc())
        .limit(limit)
        .offset(offset)
        .execution_options(populate_existing=True)
    )
    requests = list(result.scalars().all())
    request_ids = [row.id for row in requests]
    codes = await latest_codes_for_requests(session, request_ids)
    checkouts: dict[UUID, Checkout] = {}
    if request_ids:
        checkout_rows = await session.execute(
            select(Checkout).where(Checkout.request_id.in_(request_ids))
        )
        checkouts = {row.request_id: row for row in checkout_rows.scalars().all()}
    return [
        HistoryEntry(
            request=row, code=codes.get(row.id), checkout=checkouts.get(row.id)
        )
        for row in requests
    ]


async def delete_request(
    session: AsyncSession, caller: CallerContext, request_id: UUID
) -> None:
    """Delete a request that never produced a code or checkout.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting admin.
    request_id : UUID
        Request identifier.

    Returns
    -------
    None
        Raises when the request is referenced.
    """
    request = await _get_request(session, request_id)
    referenced = await session.execute(
        select(AuthorizationCode.id)
        .where(AuthorizationCode.request_id == request.id)
        .union_all(select(Checkout.id).where(Checkout.request_id == request.id))
        .limit(1)
    )
    if referenced.first() is not None:
        raise StateConflictError("Request has authorization or checkout history")
    await session.delete(request)
    await session.flush()
    await log_event(
        session,
        user_id=caller.user_id,
        action="request_deleted",
        entity_type="requests",
        entity_id=str(request_id),
        details=f"Deleted request {request_id}",
    )


async def _get_request(session: AsyncSession, request_id: UUID) -> EquipmentRequest:
    request = await session.get(EquipmentRequest, request_id, populate_existing=True)
    if request is None:
        raise NotFoundError("Request not found")
    return request


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)
