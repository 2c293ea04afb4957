"""Authorization code model."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.enums import CodeStatus
from app.models.mixins import UpdateTimestampMixin, uuid_column


class AuthorizationCode(UpdateTimestampMixin, Base):
    """Single-use code that turns an approved request into a checkout."""

    __tablename__ = "authorization_codes"
    __table_args__ = (
        Index("ix_authorization_codes_request", "request_id"),
        Index(
            "uq_authorization_codes_live_request",
            "request_id",
            unique=True,
            sqlite_where=text("status IN ('active', 'used')"),
            postgresql_where=text("status IN ('active', 'used')"),
        ),
    )

    id: Mapped[uuid.UUID] = uuid_column()
    code: Mapped[str] = mapped_column(String(32), unique=True)
    request_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("requests.id"))
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    item_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("inventory.id"))
    status: Mapped[str] = mapped_column(String(20), default=CodeStatus.ACTIVE.value)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    checkout_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("checkouts.id"), nullable=True
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text)

    request = relationship("EquipmentRequest")
    item = relationship("InventoryItem")
    user = relationship("User", foreign_keys=[user_id])
