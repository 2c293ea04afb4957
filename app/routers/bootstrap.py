"""Bootstrap routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_session
from app.errors import AuthorizationError
from app.routers.dependencies import commit_session
from app.schemas.bootstrap import BootstrapRequest, BootstrapResponse
from app.schemas.common import Envelope, TokenResponse
from app.schemas.users import UserResponse
from app.services.users import bootstrap_admin

router = APIRouter(prefix="/v1", tags=["bootstrap"])


@router.post("/bootstrap", response_model=Envelope[BootstrapResponse])
async def bootstrap(
    payload: BootstrapRequest,
    session: AsyncSession = Depends(get_session),
) -> Envelope[BootstrapResponse]:
    """Create the first administrator and its token.

    Parameters
    ----------
    payload : BootstrapRequest
        Bootstrap request.
    session : AsyncSession
        Active database session.

    Returns
    -------
    Envelope[BootstrapResponse]
        Created administrator and plaintext token.
    """
    if not get_settings().bootstrap_enabled:
        raise AuthorizationError("Bootstrap disabled")
    user, token, plaintext = await bootstrap_admin(
        session,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        department=payload.department,
        token_name=payload.token_name,
    )
    await commit_session(session)
    return Envelope(
        message="Administrator created",
        data=BootstrapResponse(
            user=UserResponse.model_validate(user),
            token=TokenResponse(id=token.id, token=plaintext, name=token.name),
        ),
    )
