"""Checkout routes."""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.routers.dependencies import commit_session
from app.schemas.checkout import (
    CheckinAction,
    CheckoutAction,
    CheckoutResponse,
    CheckoutResult,
    OpenCheckoutResponse,
)
from app.schemas.common import Envelope
from app.services.auth import CallerContext, require_caller
from app.services.checkout import check_in, direct_checkout, list_open_checkouts

router = APIRouter(prefix="/v1/checkout", tags=["checkout"])


@router.post("", response_model=Envelope[CheckoutResult])
async def checkout_or_checkin(
    payload: Annotated[CheckoutAction | CheckinAction, Body(discriminator="action")],
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[CheckoutResult]:
    """Check equipment out directly, or check it back in."""
    if isinstance(payload, CheckoutAction):
        checkout, quantity = await direct_checkout(
            session,
            caller,
            item_id=payload.item_id,
            user_id=payload.user_id,
            quantity=payload.quantity,
            due_date=payload.due_date,
            notes=payload.notes,
        )
        message = "Equipment checked out successfully"
    else:
        checkout, quantity = await check_in(
            session,
            caller,
            checkout_id=payload.checkout_id,
            condition=payload.condition,
            notes=payload.notes,
        )
        message = "Equipment checked in successfully"
    await commit_session(session)
    return Envelope(
        message=message,
        data=CheckoutResult(
            checkout=CheckoutResponse.model_validate(checkout),
            new_quantity=quantity,
        ),
    )


@router.get("", response_model=Envelope[list[OpenCheckoutResponse]])
async def list_checkouts(
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Envelope[list[OpenCheckoutResponse]]:
    """List equipment still checked out."""
    checkouts = await list_open_checkouts(
        session, caller, limit=limit, offset=offset
    )
    return Envelope(data=[OpenCheckoutResponse.build(row) for row in checkouts])
