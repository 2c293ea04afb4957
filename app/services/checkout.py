"""Checkout ledger.

A checkout removes ``quantity`` units from inventory when it opens and puts
the same number back when it is checked in.
"""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.errors import AuthorizationError, NotFoundError, StateConflictError
from app.models.checkout import Checkout
from app.models.enums import CheckoutStatus, ItemCondition, UserStatus
from app.models.token import User
from app.services import clock
from app.services.audit import log_event
from app.services.auth import CallerContext
from app.services.inventory import restore_stock, withdraw_stock

logger = logging.getLogger(__name__)


async def open_checkout(
    session: AsyncSession,
    *,
    item_id: UUID,
    user_id: UUID,
    quantity: int,
    due_date: date,
    notes: str,
    created_by: UUID,
    authorization_code: str | None = None,
    request_id: UUID | None = None,
) -> Checkout:
    """Insert a checkout row.

    Inventory is not touched here; callers withdraw stock first.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    item_id : UUID
        Item leaving the lab.
    user_id : UUID
        Borrower.
    quantity : int
        Units taken.
    due_date : date
        Expected return date.
    notes : str
        Free-text notes.
    created_by : UUID
        User who performed the checkout.
    authorization_code : str | None, default=None
        Redeemed code, if any.
    request_id : UUID | None, default=None
        Originating request, if any.

    Returns
    -------
    Checkout
        Persisted checkout row.
    """
    checkout = Checkout(
        item_id=item_id,
        user_id=user_id,
        quantity=quantity,
        date_out=clock.utcnow(),
        due_date=due_date,
        status=CheckoutStatus.CHECKED_OUT.value,
        notes=notes,
        authorization_code=authorization_code,
        request_id=request_id,
        created_by=created_by,
    )
    session.add(checkout)
    await session.flush()
    return checkout


async def direct_checkout(
    session: AsyncSession,
    caller: CallerContext,
    *,
    item_id: UUID,
    user_id: UUID | None,
    quantity: int,
    due_date: date,
    notes: str,
) -> tuple[Checkout, int]:
    """Check equipment out without an authorization code.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user.
    item_id : UUID
        Item to check out.
    user_id : UUID | None
        Borrower; defaults to the caller.
    quantity : int
        Units to take.
    due_date : date
        Expected return date.
    notes : str
        Free-text notes.

    Returns
    -------
    tuple[Checkout, int]
        New checkout and the quantity left on hand.
    """
    borrower_id = user_id or caller.user_id
    if caller.is_student and borrower_id != caller.user_id:
        raise AuthorizationError(
            "Students may only check out equipment for themselves"
        )
    borrower = await session.get(User, borrower_id)
    if borrower is None or borrower.status != UserStatus.ACTIVE.value:
        raise NotFoundError("User not found")

    remaining = await withdraw_stock(
        session, item_id=item_id, quantity=quantity, require_available=True
    )
    checkout = await open_checkout(
        session,
        item_id=item_id,
        user_id=borrower_id,
        quantity=quantity,
        due_date=due_date,
        notes=notes,
        created_by=caller.user_id,
    )
    await log_event(
        session,
        user_id=caller.user_id,
        action="checkout",
        entity_type="checkouts",
        entity_id=str(checkout.id),
        details=f"Checked out {quantity} unit(s) of item {item_id}",
        metadata={"quantity": quantity, "borrower_id": str(borrower_id)},
    )
    logger.info("Checkout %s opened for %s", checkout.id, borrower_id)
    return checkout, remaining


async def check_in(
    session: AsyncSession,
    caller: CallerContext,
    *,
    checkout_id: UUID,
    condition: ItemCondition,
    notes: str,
) -> tuple[Checkout, int]:
    """Close a checkout and return its units to inventory.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user.
    checkout_id : UUID
        Checkout identifier.
    condition : ItemCondition
        Condition of the equipment on return.
    notes : str
        Notes appended to the checkout.

    Returns
    -------
    tuple[Checkout, int]
        Closed checkout and the quantity on hand afterwards.
    """
    checkout = await session.get(Checkout, checkout_id, populate_existing=True)
    if checkout is None:
        raise NotFoundError("Checkout not found")
    if caller.is_student and checkout.user_id != caller.user_id:
        raise AuthorizationError("You can only check in your own items")
    if checkout.status != CheckoutStatus.CHECKED_OUT.value:
        raise StateConflictError("Checkout already returned")

    combined_notes = "\n".join(part for part in (checkout.notes, notes) if part)
    result = await session.execute(
        update(Checkout)
        .where(
            Checkout.id == checkout_id,
            Checkout.status == CheckoutStatus.CHECKED_OUT.value,
        )
        .values(
            date_in=clock.utcnow(),
            condition_in=condition.value,
            notes=combined_notes,
            status=CheckoutStatus.RETURNED.value,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise StateConflictError("Checkout already returned")

    on_hand = await restore_stock(
        session, item_id=checkout.item_id, quantity=checkout.quantity
    )
    await session.refresh(checkout)
    await log_event(
        session,
        user_id=caller.user_id,
        action="checkin",
        entity_type="checkouts",
        entity_id=str(checkout.id),
        details=f"Checked in {checkout.quantity} unit(s) in {condition.value} condition",
        metadata={"condition": condition.value},
    )
    logger.info("Checkout %s returned", checkout.id)
    return checkout, on_hand


async def list_open_checkouts(
    session: AsyncSession, caller: CallerContext, *, limit: int, offset: int
) -> list[Checkout]:
    """List checkouts still in custody.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting user; students only see their own.
    limit : int
        Page size.
    offset : int
        Page offset.

    Returns
    -------
    list[Checkout]
        Open checkouts, newest first.
    """
    query = (
        select(Checkout)
        .options(selectinload(Checkout.item), selectinload(Checkout.user))
        .where(Checkout.status == CheckoutStatus.CHECKED_OUT.value)
    )
    if caller.is_student:
        query = query.where(Checkout.user_id == caller.user_id)
    result = await session.execute(
        query.order_by(Checkout.date_out.desc(), Checkout.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())
