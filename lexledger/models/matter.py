"""
LexLedger - Matter Model

A matter is the unit of work that time, expenses, tasks, events and
documents hang off.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import String, DateTime, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from lexledger.database import Base
from lexledger.models.base import Money, ZERO, uuid_pk
from lexledger.timestamps import now_utc

if TYPE_CHECKING:
    from lexledger.models.client import Client
    from lexledger.models.task import Task
    from lexledger.models.billing import TimeEntry, Expense
    from lexledger.models.calendar import CalendarEvent
    from lexledger.models.document import Document


class MatterStatus:
    OPEN = "Open"
    PENDING = "Pending"
    TRIAL = "Trial"
    CLOSED = "Closed"

    ALL = (OPEN, PENDING, TRIAL, CLOSED)


class FeeStructure:
    HOURLY = "Hourly"
    FIXED = "Fixed"
    CONTINGENCY = "Contingency"

    ALL = (HOURLY, FIXED, CONTINGENCY)


class Matter(Base):
    __tablename__ = "matters"
    __table_args__ = (
        CheckConstraint("billable_rate >= 0", name="ck_matters_billable_rate_non_negative"),
        CheckConstraint("trust_balance >= 0", name="ck_matters_trust_balance_non_negative"),
    )

    id: Mapped[str] = uuid_pk()

    case_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    practice_area: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=MatterStatus.OPEN, index=True)
    fee_structure: Mapped[str] = mapped_column(String(20), nullable=False, default=FeeStructure.HOURLY)
    responsible_attorney: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Money
    billable_rate: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    trust_balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    client_id: Mapped[str] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )

    open_date: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc)

    client: Mapped["Client"] = relationship(viewonly=True, lazy="raise")
    tasks: Mapped[List["Task"]] = relationship(viewonly=True, lazy="raise")
    time_entries: Mapped[List["TimeEntry"]] = relationship(viewonly=True, lazy="raise")
    expenses: Mapped[List["Expense"]] = relationship(viewonly=True, lazy="raise")
    events: Mapped[List["CalendarEvent"]] = relationship(viewonly=True, lazy="raise")
    documents: Mapped[List["Document"]] = relationship(viewonly=True, lazy="raise")

    def __repr__(self) -> str:
        return f"<Matter {self.case_number}>"
