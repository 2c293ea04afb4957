"""Reported equipment issue model."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.enums import IssueStatus
from app.models.mixins import TimestampMixin, uuid_column


class Issue(TimestampMixin, Base):
    """Problem reported against an inventory item."""

    __tablename__ = "issues"

    id: Mapped[uuid.UUID] = uuid_column()
    item_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("inventory.id"))
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    type: Mapped[str] = mapped_column(String(20))
    severity: Mapped[str] = mapped_column(String(20))
    description: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=IssueStatus.OPEN.value)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    item = relationship("InventoryItem")
    user = relationship("User")
