"""Checkout model."""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.enums import CheckoutStatus
from app.models.mixins import TimestampMixin, uuid_column


class Checkout(TimestampMixin, Base):
    """Equipment custody record."""

    __tablename__ = "checkouts"

    id: Mapped[uuid.UUID] = uuid_column()
    item_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("inventory.id"))
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    date_out: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    due_date: Mapped[date] = mapped_column(Date)
    date_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(
        String(20), default=CheckoutStatus.CHECKED_OUT.value
    )
    condition_in: Mapped[str | None] = mapped_column(String(20))
    notes: Mapped[str] = mapped_column(Text, default="")
    authorization_code: Mapped[str | None] = mapped_column(String(32))
    request_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("requests.id"), nullable=True
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )

    item = relationship("InventoryItem")
    user = relationship("User", foreign_keys=[user_id])
