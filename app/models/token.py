"""User and API token models."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.enums import Role, UserStatus
from app.models.mixins import TimestampMixin, uuid_column


class User(TimestampMixin, Base):
    """Lab account holder."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_column()
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255), unique=True)
    role: Mapped[str] = mapped_column(String(20), default=Role.STUDENT.value)
    department: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(20), default=UserStatus.ACTIVE.value)

    tokens = relationship("ApiToken", back_populates="user")

    @property
    def full_name(self) -> str:
        """Return the display name."""
        return f"{self.first_name} {self.last_name}"


class ApiToken(TimestampMixin, Base):
    """User-scoped bearer token."""

    __tablename__ = "api_tokens"
    __table_args__ = (
        Index("ix_api_tokens_lookup", "token_lookup"),
        UniqueConstraint("user_id", "name", name="uq_api_tokens_user_name"),
    )

    id: Mapped[uuid.UUID] = uuid_column()
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    name: Mapped[str] = mapped_column(String(255))
    token_hash: Mapped[str] = mapped_column(String(512))
    token_lookup: Mapped[str] = mapped_column(String(64))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    user = relationship("User", back_populates="tokens")
