"""Common schema primitives."""

from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict

DataT = TypeVar("DataT")


class APIModel(BaseModel):
    """Base API model with attribute validation enabled."""

    model_config = ConfigDict(from_attributes=True)


class Envelope(APIModel, Generic[DataT]):
    """Successful response wrapper."""

    success: bool = True
    message: str | None = None
    data: DataT | None = None


class ErrorResponse(APIModel):
    """Failure body returned by every exception handler."""

    success: bool = False
    message: str
    error: str


class TokenResponse(APIModel):
    """Return a generated token exactly once."""

    id: UUID
    token: str
    name: str


class Pagination(APIModel):
    """Page metadata for catalog listings."""

    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next: bool
    has_previous: bool
