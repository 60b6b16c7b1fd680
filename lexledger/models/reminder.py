"""
LexLedger - Reminder Model

Reminders are written here and picked up by an external dispatcher.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from lexledger.database import Base
from lexledger.models.base import uuid_pk
from lexledger.timestamps import now_utc


class ReminderType:
    EMAIL = "email"
    SMS = "sms"
    NOTIFICATION = "notification"

    ALL = (EMAIL, SMS, NOTIFICATION)


class Reminder(Base):
    __tablename__ = "reminders"

    id: Mapped[str] = uuid_pk()
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=ReminderType.NOTIFICATION)
    trigger_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    sent: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)

    def __repr__(self) -> str:
        return f"<Reminder {self.type} {self.entity_type}:{self.entity_id}>"
