"""Equipment request schemas."""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.authorization import AuthorizationCode
from app.models.checkout import Checkout
from app.models.enums import CodeStatus, RequestStatus
from app.models.request import EquipmentRequest
from app.services import clock
from app.services.codes import format_time_remaining
from app.schemas.common import APIModel


class RequestCreate(BaseModel):
    """Ask to borrow equipment."""

    item_id: UUID
    quantity: int = Field(ge=1, le=10)
    needed_by: date
    notes: str = Field(max_length=500)

    @field_validator("needed_by")
    @classmethod
    def _not_in_past(cls, value: date) -> date:
        if value < clock.today():
            raise ValueError("needed_by cannot be in the past")
        return value

    @field_validator("notes")
    @classmethod
    def _meaningful_notes(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 10:
            raise ValueError("notes must be at least 10 characters")
        return value


class RequestTransition(BaseModel):
    """Approve, reject or cancel a request."""

    id: UUID
    status: Literal["approved", "rejected", "cancelled"]
    expiry_hours: int | None = Field(default=None, ge=1, le=168)


class RequestResponse(APIModel):
    """Request with the state of its latest authorization code."""

    id: UUID
    item_id: UUID
    item_name: str
    user_id: UUID
    user_name: str
    quantity: int
    needed_by: date
    notes: str
    status: RequestStatus
    created_at: datetime
    code: str | None = None
    code_status: CodeStatus | None = None
    code_expires_at: datetime | None = None
    code_used_at: datetime | None = None
    code_expired: bool = False
    time_remaining: str | None = None

    @classmethod
    def build(
        cls, request: EquipmentRequest, code: AuthorizationCode | None
    ) -> "RequestResponse":
        """Flatten a request row and its latest code."""
        fields = {
            "id": request.id,
            "item_id": request.item_id,
            "item_name": request.item.name,
            "user_id": request.user_id,
            "user_name": request.user.full_name,
            "quantity": request.quantity,
            "needed_by": request.needed_by,
            "notes": request.notes,
            "status": request.status,
            "created_at": request.created_at,
        }
        if code is not None:
            now = clock.utcnow()
            expires_at = clock.as_utc(code.expires_at)
            fields.update(
                code=code.code,
                code_status=code.status,
                code_expires_at=expires_at,
                code_used_at=code.used_at,
                code_expired=(
                    code.status == CodeStatus.EXPIRED.value or expires_at < now
                ),
                time_remaining=format_time_remaining(expires_at, now),
            )
        return cls(**fields)


class RequestHistoryResponse(RequestResponse):
    """Request with its resulting checkout, if any."""

    checkout_id: UUID | None = None
    checkout_status: str | None = None
    date_out: datetime | None = None
    date_in: datetime | None = None

    @classmethod
    def build_history(
        cls,
        request: EquipmentRequest,
        code: AuthorizationCode | None,
        checkout: Checkout | None,
    ) -> "RequestHistoryResponse":
        """Flatten a request with its code and checkout."""
        base = RequestResponse.build(request, code).model_dump()
        if checkout is not None:
            base.update(
                checkout_id=checkout.id,
                checkout_status=checkout.status,
                date_out=checkout.date_out,
                date_in=checkout.date_in,
            )
        return cls(**base)


class TransitionResponse(BaseModel):
    """Outcome of a status change."""

    request: RequestResponse
    authorization_code: str | None = None
    expires_at: datetime | None = None
