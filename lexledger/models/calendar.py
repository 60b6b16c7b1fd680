"""
LexLedger - Calendar Event Model
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, DateTime, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from lexledger.database import Base
from lexledger.models.base import uuid_pk
from lexledger.timestamps import now_utc


class EventType:
    MEETING = "Meeting"
    COURT = "Court"
    DEADLINE = "Deadline"

    ALL = (MEETING, COURT, DEADLINE)


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id: Mapped[str] = uuid_pk()

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=EventType.MEETING)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    matter_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("matters.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)

    def __repr__(self) -> str:
        return f"<CalendarEvent {self.title} @ {self.date}>"
