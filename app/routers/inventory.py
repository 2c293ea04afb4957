"""Inventory catalog routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.enums import ItemStatus
from app.routers.dependencies import commit_session
from app.schemas.common import Envelope, Pagination
from app.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemResponse,
    InventoryItemUpdate,
    InventoryPage,
)
from app.services.auth import CallerContext, require_caller, require_staff
from app.services.inventory import (
    create_item,
    delete_item,
    get_item,
    list_items,
    total_pages,
    update_item,
)

router = APIRouter(prefix="/v1/inventory", tags=["inventory"])


@router.get("", response_model=Envelope[InventoryPage])
async def list_inventory(
    _: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
    search: str | None = Query(default=None, max_length=100),
    category: str | None = Query(default=None, max_length=100),
    status: ItemStatus | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> Envelope[InventoryPage]:
    """Search the catalog."""
    items, total = await list_items(
        session,
        search=search,
        category=category,
        status=status,
        page=page,
        limit=limit,
    )
    pages = total_pages(total, limit)
    return Envelope(
        data=InventoryPage(
            items=[InventoryItemResponse.model_validate(row) for row in items],
            pagination=Pagination(
                current_page=page,
                total_pages=pages,
                total_items=total,
                items_per_page=limit,
                has_next=page < pages,
                has_previous=page > 1,
            ),
        )
    )


@router.get("/{item_id}", response_model=Envelope[InventoryItemResponse])
async def get_inventory_item(
    item_id: UUID,
    _: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[InventoryItemResponse]:
    """Return one catalog entry."""
    item = await get_item(session, item_id)
    return Envelope(data=InventoryItemResponse.model_validate(item))


@router.post("", response_model=Envelope[InventoryItemResponse])
async def create_inventory_item(
    payload: InventoryItemCreate,
    caller: CallerContext = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
) -> Envelope[InventoryItemResponse]:
    """Add an item to the catalog."""
    item = await create_item(session, caller, **payload.model_dump(mode="json"))
    await commit_session(session)
    return Envelope(
        message="Item added", data=InventoryItemResponse.model_validate(item)
    )


@router.put("/{item_id}", response_model=Envelope[InventoryItemResponse])
async def update_inventory_item(
    item_id: UUID,
    payload: InventoryItemUpdate,
    caller: CallerContext = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
) -> Envelope[InventoryItemResponse]:
    """Edit catalog fields."""
    fields = payload.model_dump(exclude_unset=True)
    if "status" in fields and fields["status"] is not None:
        fields["status"] = fields["status"].value
    item = await update_item(session, caller, item_id, **fields)
    await commit_session(session)
    return Envelope(
        message="Item updated", data=InventoryItemResponse.model_validate(item)
    )


@router.delete("/{item_id}", response_model=Envelope[None])
async def delete_inventory_item(
    item_id: UUID,
    caller: CallerContext = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
) -> Envelope[None]:
    """Remove an unreferenced item."""
    await delete_item(session, caller, item_id)
    await commit_session(session)
    return Envelope(message="Item deleted")
