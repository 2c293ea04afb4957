"""Inventory catalog schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.enums import ItemStatus
from app.schemas.common import APIModel, Pagination


class InventoryItemCreate(BaseModel):
    """Add an item to the catalog."""

    name: str = Field(min_length=1, max_length=255)
    category: str = Field(default="", max_length=100)
    quantity: int = Field(default=0, ge=0)
    status: ItemStatus = ItemStatus.AVAILABLE
    location: str = Field(default="", max_length=255)
    description: str = ""
    image: str | None = Field(default=None, max_length=255)


class InventoryItemUpdate(BaseModel):
    """Overwrite selected catalog fields."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = Field(default=None, max_length=100)
    quantity: int | None = Field(default=None, ge=0)
    status: ItemStatus | None = None
    location: str | None = Field(default=None, max_length=255)
    description: str | None = None
    image: str | None = Field(default=None, max_length=255)
    last_checked: datetime | None = None


class InventoryItemResponse(APIModel):
    """Catalog entry."""

    id: UUID
    name: str
    category: str
    quantity: int
    status: ItemStatus
    location: str
    description: str
    image: str | None
    last_checked: datetime | None
    created_at: datetime


class InventoryPage(BaseModel):
    """One page of catalog entries."""

    items: list[InventoryItemResponse]
    pagination: Pagination
