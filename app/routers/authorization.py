"""Authorization code routes.

Each method dispatches on the ``action`` carried in the body or query.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.errors import ValidationError
from app.routers.dependencies import commit_session
from app.schemas.authorization import (
    CancelCodeAction,
    CodePreviewResponse,
    CodeResponse,
    GenerateCodeAction,
    IssuedCodeResponse,
    RedemptionResponse,
    UseCodeAction,
)
from app.schemas.checkout import CheckoutResponse
from app.schemas.common import Envelope
from app.services import clock
from app.services.auth import CallerContext, require_caller
from app.services.codes import (
    cancel_code,
    generate_code_for_request,
    list_codes,
    redeem_code,
    validate_code,
)

router = APIRouter(prefix="/v1/authorization", tags=["authorization"])

CodeQueryAction = Literal["validate_code", "list_codes", "my_codes"]


@router.get(
    "",
    response_model=Envelope[CodePreviewResponse | list[CodeResponse]],
)
async def query_codes(
    action: CodeQueryAction,
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
    code: str | None = Query(default=None, max_length=32),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Envelope[CodePreviewResponse | list[CodeResponse]]:
    """Validate a code or list codes.

    Both branches may persist lazily expired codes, so the session is
    committed before answering.
    """
    if action == "validate_code":
        if not code:
            raise ValidationError("Authorization code is required")
        preview = await validate_code(session, caller, code.strip().upper())
        return Envelope(
            message="Authorization code is valid",
            data=CodePreviewResponse.model_validate(preview),
        )

    codes = await list_codes(
        session,
        caller,
        mine=action == "my_codes",
        limit=limit,
        offset=offset,
    )
    await commit_session(session)
    return Envelope(data=[CodeResponse.build(row) for row in codes])


@router.post(
    "",
    response_model=Envelope[IssuedCodeResponse | RedemptionResponse],
)
async def act_on_code(
    payload: Annotated[
        GenerateCodeAction | UseCodeAction, Body(discriminator="action")
    ],
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[IssuedCodeResponse | RedemptionResponse]:
    """Generate a replacement code or redeem one."""
    if isinstance(payload, GenerateCodeAction):
        issued = await generate_code_for_request(
            session,
            caller,
            request_id=payload.request_id,
            expiry_hours=payload.expiry_hours,
        )
        await commit_session(session)
        return Envelope(
            message="Authorization code generated successfully",
            data=IssuedCodeResponse(
                authorization_code=issued.code,
                request_id=issued.request_id,
                expires_at=clock.as_utc(issued.expires_at),
            ),
        )

    redemption = await redeem_code(
        session, caller, code=payload.code, notes=payload.notes
    )
    await commit_session(session)
    return Envelope(
        message="Equipment checked out successfully",
        data=RedemptionResponse(
            checkout=CheckoutResponse.model_validate(redemption.checkout),
            new_quantity=redemption.new_quantity,
        ),
    )


@router.put("", response_model=Envelope[CodeResponse])
async def cancel_code_route(
    payload: CancelCodeAction,
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[CodeResponse]:
    """Cancel an active code."""
    cancelled = await cancel_code(
        session, caller, code=payload.code, reason=payload.reason
    )
    await commit_session(session)
    return Envelope(
        message="Authorization code cancelled",
        data=CodeResponse.build(cancelled),
    )
