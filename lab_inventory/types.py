"""SDK response types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from uuid import UUID


@dataclass(frozen=True, slots=True)
class RequestInfo:
    """Equipment request.

    Attributes
    ----------
    request_id : UUID
        Request identifier.
    item_id : UUID
        Requested item.
    item_name : str
        Item display name.
    quantity : int
        Units requested.
    needed_by : date
        Date the equipment is needed.
    status : str
        Request status.
    code : str | None
        Latest authorization code, if one was issued.
    code_status : str | None
        Status of that code.
    """

    request_id: UUID
    item_id: UUID
    item_name: str
    quantity: int
    needed_by: date
    status: str
    code: str | None = None
    code_status: str | None = None


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Request after a status change.

    Attributes
    ----------
    request : RequestInfo
        Updated request.
    authorization_code : str | None
        Code minted on approval.
    expires_at : datetime | None
        Expiry of that code.
    """

    request: RequestInfo
    authorization_code: str | None
    expires_at: datetime | None


@dataclass(frozen=True, slots=True)
class CodePreview:
    """What a valid code unlocks."""

    code: str
    request_id: UUID
    item_id: UUID
    item_name: str
    user_name: str
    quantity: int
    due_date: date
    expires_at: datetime
    available_quantity: int

    @property
    def seconds_remaining(self) -> int:
        """Return the code lifetime left, clamped at zero."""
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        now = datetime.now(timezone.utc)
        return max(0, int((expires_at - now).total_seconds()))


@dataclass(frozen=True, slots=True)
class CodeInfo:
    """Authorization code record."""

    code_id: UUID
    code: str
    request_id: UUID
    item_name: str
    status: str
    expires_at: datetime
    used_at: datetime | None
    cancel_reason: str | None


@dataclass(frozen=True, slots=True)
class CheckoutInfo:
    """Checkout record with the stock level it left behind.

    Attributes
    ----------
    checkout_id : UUID
        Checkout identifier.
    item_id : UUID
        Item in custody.
    quantity : int
        Units in custody.
    due_date : date
        Expected return date.
    status : str
        ``checked_out`` or ``returned``.
    date_in : datetime | None
        Return timestamp.
    new_quantity : int
        Units on hand after the operation.
    """

    checkout_id: UUID
    item_id: UUID
    quantity: int
    due_date: date
    status: str
    date_in: datetime | None
    new_quantity: int
