"""Authorization code schemas.

POST and PUT bodies on ``/v1/authorization`` are tagged by ``action``.
"""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.authorization import AuthorizationCode
from app.models.enums import CodeStatus
from app.schemas.checkout import CheckoutResponse
from app.schemas.common import APIModel
from app.services import clock


class _CodeAction(BaseModel):
    code: str = Field(min_length=1, max_length=32)

    @field_validator("code")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return value.strip().upper()


class GenerateCodeAction(BaseModel):
    """Re-issue a code for an approved request."""

    action: Literal["generate_code"]
    request_id: UUID
    expiry_hours: int | None = Field(default=None, ge=1, le=168)


class UseCodeAction(_CodeAction):
    """Redeem a code into a checkout."""

    action: Literal["use_code"]
    notes: str = Field(default="", max_length=1000)


class CancelCodeAction(_CodeAction):
    """Cancel an active code."""

    action: Literal["cancel_code"]
    reason: str = Field(default="Cancelled by staff", max_length=500)


class CodeResponse(APIModel):
    """Authorization code with its request context."""

    id: UUID
    code: str
    request_id: UUID
    user_id: UUID
    item_id: UUID
    item_name: str
    user_name: str
    quantity: int
    status: CodeStatus
    expires_at: datetime
    used_at: datetime | None
    checkout_id: UUID | None
    cancel_reason: str | None
    created_at: datetime

    @classmethod
    def build(cls, code: AuthorizationCode) -> "CodeResponse":
        """Flatten a code row with its loaded relationships."""
        return cls(
            id=code.id,
            code=code.code,
            request_id=code.request_id,
            user_id=code.user_id,
            item_id=code.item_id,
            item_name=code.item.name,
            user_name=code.user.full_name,
            quantity=code.request.quantity,
            status=code.status,
            expires_at=clock.as_utc(code.expires_at),
            used_at=code.used_at,
            checkout_id=code.checkout_id,
            cancel_reason=code.cancel_reason,
            created_at=code.created_at,
        )


class IssuedCodeResponse(BaseModel):
    """Freshly minted code."""

    authorization_code: str
    request_id: UUID
    expires_at: datetime


class CodePreviewResponse(APIModel):
    """Details a valid code unlocks."""

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


class RedemptionResponse(BaseModel):
    """Checkout created from a code."""

    checkout: CheckoutResponse
    new_quantity: int
