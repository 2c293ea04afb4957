"""Authentication dependencies.

Bearer tokens are resolved to a :class:`CallerContext` once per HTTP request.
Services receive that context as an argument and never look the caller up
on their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.errors import AuthenticationError, AuthorizationError, StateConflictError
from app.models.enums import STAFF_ROLES, Role, UserStatus
from app.models.token import ApiToken, User
from app.services.security import lookup_hash, verify_token

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True, slots=True)
class CallerContext:
    """Identity of the authenticated caller.

    Attributes
    ----------
    user_id : UUID
        Authenticated user identifier.
    role : Role
        Role of that user.
    """

    user_id: UUID
    role: Role

    @property
    def is_staff(self) -> bool:
        """Return whether the caller is staff or admin."""
        return self.role in STAFF_ROLES

    @property
    def is_student(self) -> bool:
        """Return whether the caller is a student."""
        return self.role == Role.STUDENT


async def require_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> CallerContext:
    """Authenticate a bearer token.

    Parameters
    ----------
    credentials : HTTPAuthorizationCredentials | None
        Parsed bearer token.
    session : AsyncSession
        Active database session.

    Returns
    -------
    CallerContext
        Identity of the token owner.
    """
    if credentials is None:
        raise AuthenticationError("Missing token")
    user = await _match_token(session, credentials.credentials)
    if user is None:
        raise AuthenticationError("Invalid token")
    return CallerContext(user_id=user.id, role=Role(user.role))


async def require_staff(
    caller: CallerContext = Depends(require_caller),
) -> CallerContext:
    """Authenticate a staff or admin caller."""
    if not caller.is_staff:
        raise AuthorizationError("Admin or staff privileges required")
    return caller


async def require_admin(
    caller: CallerContext = Depends(require_caller),
) -> CallerContext:
    """Authenticate an admin caller."""
    if caller.role != Role.ADMIN:
        raise AuthorizationError("Admin privileges required")
    return caller


async def ensure_bootstrap_allowed(session: AsyncSession) -> None:
    """Ensure bootstrap can still run.

    Parameters
    ----------
    session : AsyncSession
        Active database session.

    Returns
    -------
    None
        Raises when bootstrap is already complete.
    """
    result = await session.execute(select(User.id).limit(1))
    if result.scalar_one_or_none() is not None:
        raise StateConflictError("Bootstrap already completed")


async def _match_token(session: AsyncSession, raw_token: str) -> User | None:
    """Match a raw token against hashed rows.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    raw_token : str
        Raw bearer token.

    Returns
    -------
    User | None
        Owner of the matching token if found.
    """
    result = await session.execute(
        select(ApiToken, User)
        .join(User, User.id == ApiToken.user_id)
        .where(
            ApiToken.token_lookup == lookup_hash(raw_token),
            ApiToken.revoked_at.is_(None),
            User.status == UserStatus.ACTIVE.value,
        )
    )
    for token, user in result.all():
        if verify_token(raw_token, token.token_hash):
            return user
    return None
