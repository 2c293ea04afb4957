"""User and token schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.models.enums import Role, UserStatus
from app.schemas.common import APIModel, TokenResponse


class UserCreateRequest(BaseModel):
    """Register a lab account."""

    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    role: Role = Role.STUDENT
    department: str = Field(default="", max_length=255)
    token_name: str = Field(default="default", min_length=1, max_length=255)


class TokenCreateRequest(BaseModel):
    """Issue another token for a user."""

    name: str = Field(min_length=1, max_length=255)


class UserResponse(APIModel):
    """Account metadata."""

    id: UUID
    first_name: str
    last_name: str
    email: str
    role: Role
    department: str
    status: UserStatus
    created_at: datetime


class UserWithTokenResponse(BaseModel):
    """New account with its one-time token."""

    user: UserResponse
    token: TokenResponse
