"""Authorization code issuing and redemption.

A code is minted when a request is approved and is the only way to turn
that request into a checkout. Expiry is lazy: nothing sweeps codes in the
background, instead every path that reads a code past ``expires_at``
persists the ``expired`` status before answering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import get_settings
from app.errors import (
    AuthorizationError,
    CodeAlreadyUsedError,
    CodeCancelledError,
    CodeExpiredError,
    CodeNotActiveError,
    InvalidCodeError,
    NotFoundError,
    StateConflictError,
)
from app.models.authorization import AuthorizationCode
from app.models.checkout import Checkout
from app.models.enums import CodeStatus, RequestStatus
from app.models.request import EquipmentRequest
from app.services import clock
from app.services.audit import log_event
from app.services.auth import CallerContext
from app.services.checkout import open_checkout
from app.services.inventory import get_item, withdraw_stock
from app.services.security import generate_authorization_code

logger = logging.getLogger(__name__)

_DUPLICATE_CODE = "Authorization code already exists for this request"

_STATUS_ERRORS = {
    CodeStatus.USED.value: CodeAlreadyUsedError,
    CodeStatus.CANCELLED.value: CodeCancelledError,
    CodeStatus.EXPIRED.value: CodeExpiredError,
}


@dataclass(frozen=True, slots=True)
class CodePreview:
    """Read-only view of a valid code for checkout forms."""

    code: str
    request_id: UUID
    user_id: UUID
    item_id: UUID
    user_name: str
    item_name: str
    quantity: int
    due_date: date
    expires_at: datetime
    available_quantity: int


@dataclass(frozen=True, slots=True)
class Redemption:
    """Outcome of a successful redemption."""

    checkout: Checkout
    code: AuthorizationCode
    new_quantity: int


async def issue_code(
    session: AsyncSession,
    caller: CallerContext,
    *,
    request: EquipmentRequest,
    expiry_hours: int | None = None,
) -> AuthorizationCode:
    """Mint the authorization code for an approved request.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Approving staff member.
    request : EquipmentRequest
        Request in ``approved`` status.
    expiry_hours : int | None, default=None
        Code lifetime; the configured default when omitted.

    Returns
    -------
    AuthorizationCode
        New active code.
    """
    if request.status != RequestStatus.APPROVED.value:
        raise StateConflictError("Request not found or not approved")
    existing = await session.execute(
        select(AuthorizationCode.id).where(
            AuthorizationCode.request_id == request.id,
            AuthorizationCode.status.in_(
                [CodeStatus.ACTIVE.value, CodeStatus.USED.value]
            ),
        )
    )
    if existing.first() is not None:
        raise StateConflictError(_DUPLICATE_CODE)

    settings = get_settings()
    hours = expiry_hours or settings.code_expiry_hours
    code = await _unique_code(session, settings.code_length)
    auth_code = AuthorizationCode(
        code=code,
        request_id=request.id,
        user_id=request.user_id,
        item_id=request.item_id,
        status=CodeStatus.ACTIVE.value,
        expires_at=clock.utcnow() + timedelta(hours=hours),
        created_by=caller.user_id,
    )
    session.add(auth_code)
    try:
        await session.flush()
    except IntegrityError as exc:
        # A concurrent issuer won the live-code index for this request.
        raise StateConflictError(_DUPLICATE_CODE) from exc
    await log_event(
        session,
        user_id=caller.user_id,
        action="generate_auth_code",
        entity_type="authorization_codes",
        entity_id=str(auth_code.id),
        details=(
            f"Generated authorization code {code} for request {request.id} "
            f"- expires {auth_code.expires_at.isoformat()}"
        ),
        metadata={"request_id": str(request.id), "expiry_hours": hours},
    )
    logger.info("Issued code for request %s, valid %s hours", request.id, hours)
    return auth_code


async def generate_code_for_request(
    session: AsyncSession,
    caller: CallerContext,
    *,
    request_id: UUID,
    expiry_hours: int | None,
) -> AuthorizationCode:
    """Issue a fresh code for an already approved request.

    Used when the previous code expired or was cancelled before the
    student picked the equipment up.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting staff member.
    request_id : UUID
        Approved request identifier.
    expiry_hours : int | None
        Code lifetime override.

    Returns
    -------
    AuthorizationCode
        New active code.
    """
    if not caller.is_staff:
        raise AuthorizationError()
    request = await session.get(EquipmentRequest, request_id, populate_existing=True)
    if request is None:
        raise NotFoundError("Request not found")
    return await issue_code(
        session, caller, request=request, expiry_hours=expiry_hours
    )


async def validate_code(
    session: AsyncSession, caller: CallerContext, code: str
) -> CodePreview:
    """Check a code and describe what it unlocks.

    May persist the ``active -> expired`` transition as a side effect.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user.
    code : str
        Code as typed by the user.

    Returns
    -------
    CodePreview
        Joined request, item and borrower details.
    """
    auth_code = await _find_code(session, code)
    await _ensure_usable(session, caller, auth_code)
    item = await get_item(session, auth_code.item_id)
    request = auth_code.request
    return CodePreview(
        code=auth_code.code,
        request_id=request.id,
        user_id=auth_code.user_id,
        item_id=item.id,
        user_name=auth_code.user.full_name,
        item_name=item.name,
        quantity=request.quantity,
        due_date=request.needed_by,
        expires_at=clock.as_utc(auth_code.expires_at),
        available_quantity=item.quantity,
    )


async def redeem_code(
    session: AsyncSession, caller: CallerContext, *, code: str, notes: str
) -> Redemption:
    """Exchange a valid code for a checkout.

    Withdraws the requested quantity, opens the checkout, marks the code
    used and completes the request. The caller commits these writes; any
    error leaves them to be rolled back as a whole. The one exception is a
    code found expired, which is committed on its own before anything else
    is written.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user.
    code : str
        Code to redeem.
    notes : str
        Checkout notes.

    Returns
    -------
    Redemption
        Checkout, used code and remaining quantity.
    """
    auth_code = await _find_code(session, code)
    await _ensure_usable(session, caller, auth_code)
    request = auth_code.request

    new_quantity = await withdraw_stock(
        session, item_id=auth_code.item_id, quantity=request.quantity
    )
    checkout = await open_checkout(
        session,
        item_id=auth_code.item_id,
        user_id=auth_code.user_id,
        quantity=request.quantity,
        due_date=request.needed_by,
        notes=notes,
        created_by=caller.user_id,
        authorization_code=auth_code.code,
        request_id=request.id,
    )

    marked = await session.execute(
        update(AuthorizationCode)
        .where(
            AuthorizationCode.id == auth_code.id,
            AuthorizationCode.status == CodeStatus.ACTIVE.value,
        )
        .values(
            status=CodeStatus.USED.value,
            used_at=clock.utcnow(),
            checkout_id=checkout.id,
        )
        .execution_options(synchronize_session=False)
    )
    if marked.rowcount == 0:
        raise CodeAlreadyUsedError()

    completed = await session.execute(
        update(EquipmentRequest)
        .where(
            EquipmentRequest.id == request.id,
            EquipmentRequest.status == RequestStatus.APPROVED.value,
        )
        .values(status=RequestStatus.COMPLETED.value)
        .execution_options(synchronize_session=False)
    )
    if completed.rowcount == 0:
        raise StateConflictError("Request is no longer approved")

    await session.refresh(
        auth_code, attribute_names=["status", "used_at", "checkout_id"]
    )
    await log_event(
        session,
        user_id=caller.user_id,
        action="use_auth_code",
        entity_type="checkouts",
        entity_id=str(checkout.id),
        details=f"Used authorization code {auth_code.code} for request {request.id}",
        metadata={"quantity": request.quantity},
    )
    logger.info(
        "Code for request %s redeemed into checkout %s", request.id, checkout.id
    )
    return Redemption(checkout=checkout, code=auth_code, new_quantity=new_quantity)


async def cancel_code(
    session: AsyncSession, caller: CallerContext, *, code: str, reason: str
) -> AuthorizationCode:
    """Cancel an active code.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting staff member.
    code : str
        Code to cancel.
    reason : str
        Reason recorded with the cancellation.

    Returns
    -------
    AuthorizationCode
        Cancelled code.
    """
    if not caller.is_staff:
        raise AuthorizationError()
    auth_code = await _find_code(session, code)
    await _ensure_usable(session, caller, auth_code)
    result = await session.execute(
        update(AuthorizationCode)
        .where(
            AuthorizationCode.id == auth_code.id,
            AuthorizationCode.status == CodeStatus.ACTIVE.value,
        )
        .values(status=CodeStatus.CANCELLED.value, cancel_reason=reason)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError("Authorization code not found or already processed")
    await session.refresh(auth_code, attribute_names=["status", "cancel_reason"])
    await log_event(
        session,
        user_id=caller.user_id,
        action="cancel_auth_code",
        entity_type="authorization_codes",
        entity_id=str(auth_code.id),
        details=f"Cancelled authorization code {auth_code.code} - Reason: {reason}",
    )
    return auth_code


async def cancel_codes_for_request(
    session: AsyncSession, *, request_id: UUID, reason: str
) -> int:
    """Cancel whatever active code a request still has.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    request_id : UUID
        Request identifier.
    reason : str
        Reason recorded with the cancellation.

    Returns
    -------
    int
        Number of codes cancelled.
    """
    result = await session.execute(
        update(AuthorizationCode)
        .where(
            AuthorizationCode.request_id == request_id,
            AuthorizationCode.status == CodeStatus.ACTIVE.value,
        )
        .values(status=CodeStatus.CANCELLED.value, cancel_reason=reason)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def expire_overdue_codes(
    session: AsyncSession, *, user_id: UUID | None = None
) -> int:
    """Flip every overdue active code to ``expired``.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    user_id : UUID | None, default=None
        Restrict the sweep to one user's codes.

    Returns
    -------
    int
        Number of codes expired.
    """
    statement = (
        update(AuthorizationCode)
        .where(
            AuthorizationCode.status == CodeStatus.ACTIVE.value,
            AuthorizationCode.expires_at < clock.utcnow(),
        )
        .values(status=CodeStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    if user_id is not None:
        statement = statement.where(AuthorizationCode.user_id == user_id)
    result = await session.execute(statement)
    if result.rowcount:
        logger.info("Expired %s overdue authorization code(s)", result.rowcount)
    return result.rowcount


async def list_codes(
    session: AsyncSession,
    caller: CallerContext,
    *,
    mine: bool,
    limit: int,
    offset: int,
) -> list[AuthorizationCode]:
    """List codes after sweeping overdue ones.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user.
    mine : bool
        Only the caller's own codes. Listing everyone's requires staff.
    limit : int
        Page size.
    offset : int
        Page offset.

    Returns
    -------
    list[AuthorizationCode]
        Codes, newest first.
    """
    if not mine and not caller.is_staff:
        raise AuthorizationError()
    owner = caller.user_id if mine else None
    await expire_overdue_codes(session, user_id=owner)
    query = select(AuthorizationCode).options(
        selectinload(AuthorizationCode.request),
        selectinload(AuthorizationCode.item),
        selectinload(AuthorizationCode.user),
    )
    if owner is not None:
        query = query.where(AuthorizationCode.user_id == owner)
    result = await session.execute(
        query.order_by(
            AuthorizationCode.created_at.desc(), AuthorizationCode.id.desc()
        )
        .limit(limit)
        .offset(offset)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def latest_codes_for_requests(
    session: AsyncSession, request_ids: list[UUID]
) -> dict[UUID, AuthorizationCode]:
    """Return the most recent code of each request that has one."""
    if not request_ids:
        return {}
    result = await session.execute(
        select(AuthorizationCode)
        .where(AuthorizationCode.request_id.in_(request_ids))
        .order_by(AuthorizationCode.created_at.asc())
        .execution_options(populate_existing=True)
    )
    latest: dict[UUID, AuthorizationCode] = {}
    for auth_code in result.scalars().all():
        latest[auth_code.request_id] = auth_code
    return latest


def format_time_remaining(expires_at: datetime, now: datetime) -> str:
    """Render the lifetime left on a code.

    Parameters
    ----------
    expires_at : datetime
        Code expiry.
    now : datetime
        Reference time.

    Returns
    -------
    str
        ``"Expired"`` or a compact ``"1h 2m 3s"`` style string.
    """
    remaining = int((clock.as_utc(expires_at) - now).total_seconds())
    if remaining < 0:
        return "Expired"
    hours, rest = divmod(remaining, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


async def _unique_code(session: AsyncSession, length: int) -> str:
    """Draw codes until one is not already in the table."""
    while True:
        candidate = generate_authorization_code(length)
        taken = await session.execute(
            select(AuthorizationCode.id).where(AuthorizationCode.code == candidate)
        )
        if taken.first() is None:
            return candidate


async def _find_code(session: AsyncSession, code: str) -> AuthorizationCode:
    """Load a code with its request, item and owner."""
    result = await session.execute(
        select(AuthorizationCode)
        .options(
            selectinload(AuthorizationCode.request),
            selectinload(AuthorizationCode.item),
            selectinload(AuthorizationCode.user),
        )
        .where(AuthorizationCode.code == code)
        .execution_options(populate_existing=True)
    )
    auth_code = result.scalar_one_or_none()
    if auth_code is None:
        raise InvalidCodeError()
    return auth_code


async def _ensure_usable(
    session: AsyncSession, caller: CallerContext, auth_code: AuthorizationCode
) -> None:
    """Raise unless the code is active, unexpired and usable by the caller.

    Status is checked before expiry. An active code found past its expiry
    is moved to ``expired`` and that change is committed immediately, so it
    survives the rollback of whatever operation was attempted.

    Must be called before the calling operation writes anything. The
    expiry commit ends the current transaction, and would carry any
    earlier pending writes of the caller along with it.
    """
    if auth_code.status != CodeStatus.ACTIVE.value:
        raise _STATUS_ERRORS.get(auth_code.status, CodeNotActiveError)()
    if clock.utcnow() > clock.as_utc(auth_code.expires_at):
        result = await session.execute(
            update(AuthorizationCode)
            .where(
                AuthorizationCode.id == auth_code.id,
                AuthorizationCode.status == CodeStatus.ACTIVE.value,
            )
            .values(status=CodeStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        if result.rowcount:
            logger.info("Authorization code %s expired on read", auth_code.id)
        raise CodeExpiredError()
    if caller.is_student and auth_code.user_id != caller.user_id:
        raise AuthorizationError("You are not authorized to use this code")
