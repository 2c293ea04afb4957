"""User accounts and their bearer tokens."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import AuthorizationError, NotFoundError, StateConflictError
from app.models.enums import Role, UserStatus
from app.models.token import ApiToken, User
from app.services import clock
from app.services.audit import log_event
from app.services.auth import CallerContext, ensure_bootstrap_allowed
from app.services.security import generate_plaintext_token, hash_token, lookup_hash

logger = logging.getLogger(__name__)

_TOKEN_PREFIXES = {
    Role.STUDENT: "stu",
    Role.STAFF: "stf",
    Role.ADMIN: "adm",
}


async def bootstrap_admin(
    session: AsyncSession,
    *,
    first_name: str,
    last_name: str,
    email: str,
    department: str,
    token_name: str,
) -> tuple[User, ApiToken, str]:
    """Create the first administrator.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    first_name : str
        Given name.
    last_name : str
        Family name.
    email : str
        Login email.
    department : str
        Department.
    token_name : str
        Name of the initial token.

    Returns
    -------
    tuple[User, ApiToken, str]
        Admin user, token row and the plaintext token.
    """
    await ensure_bootstrap_allowed(session)
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email.lower(),
        role=Role.ADMIN.value,
        department=department,
    )
    session.add(user)
    await session.flush()
    token, plaintext = await _mint_token(session, user, token_name)
    await log_event(
        session,
        user_id=user.id,
        action="bootstrap",
        entity_type="users",
        entity_id=str(user.id),
        details=f"Bootstrapped administrator {user.email}",
    )
    logger.info("Bootstrapped administrator %s", user.id)
    return user, token, plaintext


async def create_user(
    session: AsyncSession,
    caller: CallerContext,
    *,
    first_name: str,
    last_name: str,
    email: str,
    role: Role,
    department: str,
    token_name: str,
) -> tuple[User, ApiToken, str]:
    """Register an account and issue its first token.

    Staff may register students only; admins may register any role.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting staff member.
    first_name : str
        Given name.
    last_name : str
        Family name.
    email : str
        Login email, unique case-insensitively.
    role : Role
        Account role.
    department : str
        Department.
    token_name : str
        Name of the initial token.

    Returns
    -------
    tuple[User, ApiToken, str]
        New user, token row and the plaintext token.
    """
    if not caller.is_staff:
        raise AuthorizationError()
    if role != Role.STUDENT and caller.role != Role.ADMIN:
        raise AuthorizationError("Only administrators can create staff accounts")
    normalized = email.lower()
    existing = await session.execute(select(User.id).where(User.email == normalized))
    if existing.first() is not None:
        raise StateConflictError("Email already registered")

    user = User(
        first_name=first_name,
        last_name=last_name,
        email=normalized,
        role=role.value,
        department=department,
    )
    session.add(user)
    await session.flush()
    token, plaintext = await _mint_token(session, user, token_name)
    await log_event(
        session,
        user_id=caller.user_id,
        action="user_created",
        entity_type="users",
        entity_id=str(user.id),
        details=f"Created {role.value} account {user.email}",
    )
    return user, token, plaintext


async def issue_token(
    session: AsyncSession, caller: CallerContext, *, user_id: UUID, name: str
) -> tuple[ApiToken, str]:
    """Issue an additional token for an active user."""
    user = await _get_active_user(session, user_id)
    duplicate = await session.execute(
        select(ApiToken.id).where(ApiToken.user_id == user.id, ApiToken.name == name)
    )
    if duplicate.first() is not None:
        raise StateConflictError("Token name already exists for user")
    token, plaintext = await _mint_token(session, user, name)
    await log_event(
        session,
        user_id=caller.user_id,
        action="token_issued",
        entity_type="api_tokens",
        entity_id=str(token.id),
        metadata={"user_id": str(user.id), "name": name},
    )
    return token, plaintext


async def list_users(
    session: AsyncSession,
    *,
    search: str | None,
    role: Role | None,
    limit: int,
    offset: int,
) -> list[User]:
    """List accounts matching a name or email fragment."""
    query = select(User)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    if role is not None:
        query = query.where(User.role == role.value)
    result = await session.execute(
        query.order_by(func.lower(User.last_name), User.id).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


async def get_user(session: AsyncSession, user_id: UUID) -> User:
    """Return a user by id or raise."""
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def deactivate_user(
    session: AsyncSession, caller: CallerContext, user_id: UUID
) -> User:
    """Deactivate an account and revoke all of its tokens.

    Parameters
    ----------
    session : AsyncSession
        Active database session.
    caller : CallerContext
        Acting admin.
    user_id : UUID
        Account to deactivate.

    Returns
    -------
    User
        Deactivated user.
    """
    if user_id == caller.user_id:
        raise StateConflictError("You cannot deactivate your own account")
    user = await _get_active_user(session, user_id)
    user.status = UserStatus.INACTIVE.value
    await session.execute(
        update(ApiToken)
        .where(ApiToken.user_id == user.id, ApiToken.revoked_at.is_(None))
        .values(revoked_at=clock.utcnow())
        .execution_options(synchronize_session=False)
    )
    await log_event(
        session,
        user_id=caller.user_id,
        action="user_deactivated",
        entity_type="users",
        entity_id=str(user.id),
    )
    logger.info("User %s deactivated", user.id)
    return user


async def _get_active_user(session: AsyncSession, user_id: UUID) -> User:
    user = await get_user(session, user_id)
    if user.status != UserStatus.ACTIVE.value:
        raise NotFoundError("User not found")
    return user


async def _mint_token(
    session: AsyncSession, user: User, name: str
) -> tuple[ApiToken, str]:
    plaintext = generate_plaintext_token(_TOKEN_PREFIXES[Role(user.role)])
    token = ApiToken(
        user_id=user.id,
        name=name,
        token_hash=hash_token(plaintext),
        token_lookup=lookup_hash(plaintext),
    )
    session.add(token)
    await session.flush()
    return token, plaintext
