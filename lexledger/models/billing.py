"""
LexLedger - Billing Models

Time entries, expenses, invoices and the counter that numbers invoices.
"""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import String, Boolean, Date, DateTime, Integer, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from lexledger.database import Base
from lexledger.models.base import Money, ZERO, uuid_pk
from lexledger.timestamps import now_utc, today_utc

if TYPE_CHECKING:
    from lexledger.models.client import Client
    from lexledger.models.matter import Matter

MINUTES_PER_HOUR = Decimal(60)


def time_entry_amount(duration_minutes: int, rate: Decimal) -> Decimal:
    """Billable amount of a time entry: (duration / 60) x rate, unrounded."""
    return Decimal(duration_minutes or 0) * Decimal(rate or 0) / MINUTES_PER_HOUR


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        CheckConstraint("duration >= 0", name="ck_time_entries_duration_non_negative"),
        CheckConstraint("rate >= 0", name="ck_time_entries_rate_non_negative"),
    )

    id: Mapped[str] = uuid_pk()

    description: Mapped[str] = mapped_column(Text, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # minutes
    rate: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    date: Mapped[date_type] = mapped_column(Date, nullable=False, default=today_utc)
    activity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_billed: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    matter_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("matters.id", ondelete="SET NULL"), nullable=True, index=True
    )
    invoice_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)

    matter: Mapped[Optional["Matter"]] = relationship(viewonly=True, lazy="raise")

    @property
    def amount(self) -> Decimal:
        return time_entry_amount(self.duration, self.rate)

    @property
    def hours(self) -> Decimal:
        return Decimal(self.duration or 0) / MINUTES_PER_HOUR

    def __repr__(self) -> str:
        return f"<TimeEntry {self.duration}min @ {self.rate}>"


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_expenses_amount_non_negative"),
    )

    id: Mapped[str] = uuid_pk()

    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="General")
    date: Mapped[date_type] = mapped_column(Date, nullable=False, default=today_utc)
    is_billed: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    matter_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("matters.id", ondelete="SET NULL"), nullable=True, index=True
    )
    invoice_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)

    def __repr__(self) -> str:
        return f"<Expense {self.category} {self.amount}>"


class InvoiceStatus:
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    OVERDUE = "Overdue"

    ALL = (DRAFT, SENT, PAID, OVERDUE)
    OUTSTANDING = (SENT, OVERDUE)


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_invoices_amount_non_negative"),
    )

    id: Mapped[str] = uuid_pk()

    number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    issue_date: Mapped[date_type] = mapped_column(Date, nullable=False, default=today_utc)
    due_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    client_id: Mapped[str] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc)

    client: Mapped["Client"] = relationship(viewonly=True, lazy="raise")
    time_entries: Mapped[List[TimeEntry]] = relationship(viewonly=True, lazy="raise")
    expenses: Mapped[List[Expense]] = relationship(viewonly=True, lazy="raise")

    def __repr__(self) -> str:
        return f"<Invoice {self.number} [{self.status}]>"


class SequenceCounter(Base):
    """Named monotonic counter (invoice numbers)."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.value}>"
