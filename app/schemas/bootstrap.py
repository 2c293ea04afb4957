"""Bootstrap request and response schemas."""

from pydantic import BaseModel, EmailStr, Field

from app.schemas.common import TokenResponse
from app.schemas.users import UserResponse


class BootstrapRequest(BaseModel):
    """Create the first administrator."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    department: str = Field(default="", max_length=255)
    token_name: str = Field(default="default-admin", min_length=1, max_length=255)


class BootstrapResponse(BaseModel):
    """Bootstrap response payload."""

    user: UserResponse
    token: TokenResponse
