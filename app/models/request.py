"""Equipment request model."""

import uuid
from datetime import date

from sqlalchemy import Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.enums import RequestStatus
from app.models.mixins import UpdateTimestampMixin, uuid_column


class EquipmentRequest(UpdateTimestampMixin, Base):
    """Student request to borrow equipment."""

    __tablename__ = "requests"

    id: Mapped[uuid.UUID] = uuid_column()
    item_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("inventory.id"))
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    quantity: Mapped[int] = mapped_column(Integer)
    needed_by: Mapped[date] = mapped_column(Date)
    notes: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), default=RequestStatus.PENDING.value
    )

    item = relationship("InventoryItem")
    user = relationship("User")
