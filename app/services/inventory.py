"""Inventory ledger.

``quantity`` is the authoritative on-hand count. Every movement goes through
:func:`withdraw_stock` or :func:`restore_stock`, which change it with a single
conditional ``UPDATE`` so concurrent withdrawals can never drive it negative.
"""

from __future__ import annotations

import logging
import math
from typing import Any
from uuid import UUID

from sqlalchemy import case, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import (
    InsufficientInventoryError,
    NotFoundError,
    StateConflictError,
)
from app.models.checkout import Checkout
from app.models.enums import ItemStatus
from app.models.inventory import InventoryItem
from app.models.request import EquipmentRequest
from app.services import clock
from app.services.audit import log_event
from app.services.auth import CallerContext

logger = logging.getLogger(__name__)


async def get_item(session: AsyncSession, item_id: UUID) -> InventoryItem:
    """Return an inventory item or raise.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    item_id : UUID
        Item identifier.

    Returns
    -------
    InventoryItem
        Freshly loaded item row.
    """
    item = await session.get(InventoryItem, item_id, populate_existing=True)
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


async def list_items(
    session: AsyncSession,
    *,
    search: str | None,
    category: str | None,
    status: ItemStatus | None,
    page: int,
    limit: int,
) -> tuple[list[InventoryItem], int]:
    """Search the catalog one page at a time.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    search : str | None
        Case-insensitive name fragment.
    category : str | None
        Exact category filter; ``"all"`` disables it.
    status : ItemStatus | None
        Status filter.
    page : int
        One-based page number.
    limit : int
        Page size.

    Returns
    -------
    tuple[list[InventoryItem], int]
        Items on the requested page and the total match count.
    """
    conditions = []
    if search:
        conditions.append(InventoryItem.name.ilike(f"%{search}%"))
    if category and category != "all":
        conditions.append(InventoryItem.category == category)
    if status is not None:
        conditions.append(InventoryItem.status == status.value)

    total_result = await session.execute(
        select(func.count(InventoryItem.id)).where(*conditions)
    )
    total = total_result.scalar_one()
    result = await session.execute(
        select(InventoryItem)
        .where(*conditions)
        .order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


def total_pages(total: int, limit: int) -> int:
    """Return the number of pages needed for ``total`` rows."""
    return math.ceil(total / limit) if total else 0


async def create_item(
    session: AsyncSession, caller: CallerContext, **fields: Any
) -> InventoryItem:
    """Add an item to the catalog.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting staff member.
    **fields : Any
        Column values.

    Returns
    -------
    InventoryItem
        Persisted item.
    """
    item = InventoryItem(**fields)
    session.add(item)
    await session.flush()
    await log_event(
        session,
        user_id=caller.user_id,
        action="inventory_item_created",
        entity_type="inventory",
        entity_id=str(item.id),
        details=f"Added {item.name} (quantity {item.quantity})",
    )
    return item


async def update_item(
    session: AsyncSession, caller: CallerContext, item_id: UUID, **fields: Any
) -> InventoryItem:
    """Edit catalog fields of an item.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting staff member.
    item_id : UUID
        Item identifier.
    **fields : Any
        Column values to overwrite.

    Returns
    -------
    InventoryItem
        Updated item.
    """
    item = await get_item(session, item_id)
    for field, value in fields.items():
        setattr(item, field, value)
    item.last_checked = clock.utcnow()
    await session.flush()
    await log_event(
        session,
        user_id=caller.user_id,
        action="inventory_item_updated",
        entity_type="inventory",
        entity_id=str(item.id),
        details=f"Updated {item.name}",
        metadata={"fields": ",".join(sorted(fields))},
    )
    return item


async def delete_item(
    session: AsyncSession, caller: CallerContext, item_id: UUID
) -> None:
    """Remove an item that has no request or checkout history.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting staff member.
    item_id : UUID
        Item identifier.

    Returns
    -------
    None
        Raises when the item is still referenced.
    """
    item = await get_item(session, item_id)
    referenced = await session.execute(
        select(
            exists().where(EquipmentRequest.item_id == item_id)
            | exists().where(Checkout.item_id == item_id)
        )
    )
    if referenced.scalar():
        raise StateConflictError("Item has request or checkout history")
    await session.delete(item)
    await session.flush()
    await log_event(
        session,
        user_id=caller.user_id,
        action="inventory_item_deleted",
        entity_type="inventory",
        entity_id=str(item_id),
        details=f"Deleted {item.name}",
    )


async def withdraw_stock(
    session: AsyncSession,
    *,
    item_id: UUID,
    quantity: int,
    require_available: bool = False,
) -> int:
    """Atomically remove units from an item.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    item_id : UUID
        Item identifier.
    quantity : int
        Units to remove.
    require_available : bool, default=False
        Also require ``status = available`` in the same statement.

    Returns
    -------
    int
        Quantity left on hand.
    """
    remaining = InventoryItem.quantity - quantity
    statement = (
        update(InventoryItem)
        .where(InventoryItem.id == item_id, InventoryItem.quantity >= quantity)
        .values(
            quantity=remaining,
            status=case(
                (remaining == 0, ItemStatus.CHECKED_OUT.value),
                else_=ItemStatus.AVAILABLE.value,
            ),
            last_checked=clock.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if require_available:
        statement = statement.where(
            InventoryItem.status == ItemStatus.AVAILABLE.value
        )
    result = await session.execute(statement)
    item = await get_item(session, item_id)
    if result.rowcount == 0:
        if require_available and item.status != ItemStatus.AVAILABLE.value:
            raise StateConflictError("Item is not available for checkout")
        raise InsufficientInventoryError(
            f"Insufficient inventory. Available: {item.quantity}, "
            f"Requested: {quantity}"
        )
    logger.info("Withdrew %s unit(s) of %s, %s left", quantity, item_id, item.quantity)
    return item.quantity


async def restore_stock(
    session: AsyncSession, *, item_id: UUID, quantity: int
) -> int:
    """Return units to an item and mark it available.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    item_id : UUID
        Item identifier.
    quantity : int
        Units to add back.

    Returns
    -------
    int
        Quantity on hand afterwards.
    """
    result = await session.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item_id)
        .values(
            quantity=InventoryItem.quantity + quantity,
            status=ItemStatus.AVAILABLE.value,
            last_checked=clock.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("Inventory item not found")
    item = await get_item(session, item_id)
    logger.info("Restored %s unit(s) of %s, %s on hand", quantity, item_id, item.quantity)
    return item.quantity
