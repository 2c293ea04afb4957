"""User account routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.enums import Role
from app.routers.dependencies import commit_session
from app.schemas.common import Envelope, TokenResponse
from app.schemas.users import (
    TokenCreateRequest,
    UserCreateRequest,
    UserResponse,
    UserWithTokenResponse,
)
from app.services.auth import CallerContext, require_admin, require_caller, require_staff
from app.services.users import (
    create_user,
    deactivate_user,
    get_user,
    issue_token,
    list_users,
)

router = APIRouter(prefix="/v1/users", tags=["users"])


@router.post("", response_model=Envelope[UserWithTokenResponse])
async def create_user_route(
    payload: UserCreateRequest,
    caller: CallerContext = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
) -> Envelope[UserWithTokenResponse]:
    """Register an account and return its token once."""
    user, token, plaintext = await create_user(
        session,
        caller,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        role=payload.role,
        department=payload.department,
        token_name=payload.token_name,
    )
    await commit_session(session)
    return Envelope(
        message="User created",
        data=UserWithTokenResponse(
            user=UserResponse.model_validate(user),
            token=TokenResponse(id=token.id, token=plaintext, name=token.name),
        ),
    )


@router.get("", response_model=Envelope[list[UserResponse]])
async def list_users_route(
    _: CallerContext = Depends(require_staff),
    session: AsyncSession = Depends(get_session),
    search: str | None = Query(default=None, max_length=100),
    role: Role | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> Envelope[list[UserResponse]]:
    """List accounts."""
    users = await list_users(
        session, search=search, role=role, limit=limit, offset=offset
    )
    return Envelope(data=[UserResponse.model_validate(row) for row in users])


@router.get("/me", response_model=Envelope[UserResponse])
async def current_user(
    caller: CallerContext = Depends(require_caller),
    session: AsyncSession = Depends(get_session),
) -> Envelope[UserResponse]:
    """Return the authenticated account."""
    user = await get_user(session, caller.user_id)
    return Envelope(data=UserResponse.model_validate(user))


@router.post("/{user_id}/tokens", response_model=Envelope[TokenResponse])
async def issue_token_route(
    user_id: UUID,
    payload: TokenCreateRequest,
    caller: CallerContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Envelope[TokenResponse]:
    """Issue an additional token for a user."""
    token, plaintext = await issue_token(
        session, caller, user_id=user_id, name=payload.name
    )
    await commit_session(session)
    return Envelope(
        message="Token issued",
        data=TokenResponse(id=token.id, token=plaintext, name=token.name),
    )


@router.delete("/{user_id}", response_model=Envelope[UserResponse])
async def deactivate_user_route(
    user_id: UUID,
    caller: CallerContext = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
) -> Envelope[UserResponse]:
    """Deactivate an account and revoke its tokens."""
    user = await deactivate_user(session, caller, user_id)
    await commit_session(session)
    return Envelope(message="User deactivated", data=UserResponse.model_validate(user))
