"""Checkout schemas.

POST bodies on ``/v1/checkout`` are tagged by ``action``.
"""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.checkout import Checkout
from app.models.enums import CheckoutStatus, ItemCondition
from app.schemas.common import APIModel
from app.services import clock


class CheckoutAction(BaseModel):
    """Check equipment out directly."""

    action: Literal["checkout"]
    item_id: UUID
    user_id: UUID | None = None
    quantity: int = Field(default=1, ge=1, le=10)
    due_date: date
    notes: str = Field(default="", max_length=1000)

    @field_validator("due_date")
    @classmethod
    def _not_in_past(cls, value: date) -> date:
        if value < clock.today():
            raise ValueError("due_date cannot be in the past")
        return value


class CheckinAction(BaseModel):
    """Return checked-out equipment."""

    action: Literal["checkin"]
    checkout_id: UUID
    condition: ItemCondition = ItemCondition.GOOD
    notes: str = Field(default="", max_length=1000)


class CheckoutResponse(APIModel):
    """Checkout record."""

    id: UUID
    item_id: UUID
    user_id: UUID
    quantity: int
    date_out: datetime
    due_date: date
    date_in: datetime | None
    status: CheckoutStatus
    condition_in: ItemCondition | None
    notes: str
    authorization_code: str | None
    request_id: UUID | None


class CheckoutResult(BaseModel):
    """Checkout or check-in outcome with the resulting stock level."""

    checkout: CheckoutResponse
    new_quantity: int


class OpenCheckoutResponse(CheckoutResponse):
    """Open checkout with borrower and item names."""

    item_name: str
    user_name: str
    is_overdue: bool

    @classmethod
    def build(cls, checkout: Checkout) -> "OpenCheckoutResponse":
        """Flatten a checkout row with its loaded relationships."""
        base = CheckoutResponse.model_validate(checkout).model_dump()
        return cls(
            **base,
            item_name=checkout.item.name,
            user_name=checkout.user.full_name,
            is_overdue=checkout.due_date < clock.today(),
        )
