"""
LexLedger - Billing / Invoice Engine

- Time entry amounts are derived, never stored: (minutes / 60) x rate.
- Invoice numbers (INV-0001, INV-0002, ...) come from a counter row that is
  incremented with a single UPDATE inside the invoice's transaction, so two
  concurrent creations serialize on that row instead of reading the same
  maximum.
- Any status may move to any other status; every move is audited with the
  old and new value. Overdue is only ever set explicitly.
- Printed invoices carry 18% VAT on the subtotal.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, log_event, snapshot
from lexledger.errors import NotFound, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.billing import (
    Expense,
    Invoice,
    InvoiceStatus,
    SequenceCounter,
    TimeEntry,
    time_entry_amount,
)
from lexledger.models.client import Client
from lexledger.models.matter import Matter
from lexledger.timestamps import now_utc, today_utc

logger = logging.getLogger(__name__)

VAT_RATE = Decimal("0.18")
CENT = Decimal("0.01")

INVOICE_PREFIX = "INV-"
INVOICE_SEQUENCE = "invoice_number"
_INVOICE_NUMBER_RE = re.compile(r"^INV-(\d+)$")


def to_money(value: Decimal) -> Decimal:
    """Round for presentation (2 places, half up)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def check_money(errors: dict, data: dict, *fields: str) -> None:
    """Record a field error for each monetary input that cannot be stored as given."""
    for name in fields:
        if data.get(name) is None:
            continue
        amount = Decimal(data[name])
        if amount < 0:
            errors[name] = "Must not be negative"
        elif amount != amount.quantize(CENT):
            errors[name] = "Must have at most two decimal places"


# =============================================================================
# INVOICE NUMBERING
# =============================================================================

def format_invoice_number(value: int) -> str:
    return f"{INVOICE_PREFIX}{value:04d}"


def parse_invoice_number(number: str) -> Optional[int]:
    match = _INVOICE_NUMBER_RE.match(number or "")
    return int(match.group(1)) if match else None


async def _highest_invoice_suffix(db: AsyncSession) -> int:
    result = await db.execute(select(Invoice.number))
    suffixes = [parse_invoice_number(n) for n in result.scalars().all()]
    return max((s for s in suffixes if s is not None), default=0)


async def next_invoice_number(db: AsyncSession) -> str:
    """
    Allocate the next invoice number inside the current transaction.

    The counter is seeded from the highest existing number the first time it
    is used, and only ever moves forward (deleting invoices leaves gaps).
    """
    bumped = await db.execute(
        update(SequenceCounter)
        .where(SequenceCounter.name == INVOICE_SEQUENCE)
        .values(value=SequenceCounter.value + 1)
        .execution_options(synchronize_session=False)
    )
    if bumped.rowcount == 1:
        value = await db.scalar(
            select(SequenceCounter.value).where(SequenceCounter.name == INVOICE_SEQUENCE)
        )
        return format_invoice_number(value)

    value = await _highest_invoice_suffix(db) + 1
    db.add(SequenceCounter(name=INVOICE_SEQUENCE, value=value))
    await repository.flush(db, "Invoice numbering conflicted with a concurrent request, please retry")
    return format_invoice_number(value)


async def peek_next_invoice_number(db: AsyncSession) -> str:
    """The number the next invoice would get, without reserving it."""
    current = await db.scalar(
        select(SequenceCounter.value).where(SequenceCounter.name == INVOICE_SEQUENCE)
    )
    if current is None:
        current = await _highest_invoice_suffix(db)
    return format_invoice_number(current + 1)


# =============================================================================
# INVOICES
# =============================================================================

def _validate_invoice_fields(amount: Optional[Decimal] = None, status: Optional[str] = None) -> None:
    errors = {}
    check_money(errors, {"amount": amount}, "amount")
    if status is not None and status not in InvoiceStatus.ALL:
        errors["status"] = f"Status must be one of: {', '.join(InvoiceStatus.ALL)}"
    if errors:
        raise ValidationFailed(errors)


async def create_invoice(
    db: AsyncSession,
    actor: AuditContext,
    client_id: str,
    amount: Decimal,
    due_date: date,
    issue_date: Optional[date] = None,
    status: str = InvoiceStatus.DRAFT,
    notes: Optional[str] = None,
) -> Invoice:
    """Create an invoice with the next number and audit it."""
    _validate_invoice_fields(amount, status)
    if await repository.find(db, Client, client_id) is None:
        raise ValidationFailed.field("client_id", "Client does not exist")

    invoice = Invoice(
        number=await next_invoice_number(db),
        client_id=client_id,
        amount=to_money(amount),
        issue_date=issue_date or today_utc(),
        due_date=due_date,
        status=status,
        notes=notes,
    )
    await repository.create(db, invoice, "Invoice number already in use, please retry", "number")
    await log_event(
        db, actor, AuditAction.CREATE, "Invoice", invoice.id,
        new_values=snapshot(invoice),
        details=f"Invoice {invoice.number} created",
    )
    await db.commit()
    return invoice


async def _unbilled_for_client(
    db: AsyncSession,
    client_id: str,
    matter_id: Optional[str] = None,
) -> tuple[List[TimeEntry], List[Expense]]:
    matter_filter = [Matter.client_id == client_id]
    if matter_id:
        matter_filter.append(Matter.id == matter_id)

    entries = await (
        repository.query(db, TimeEntry)
        .join(Matter, TimeEntry.matter_id == Matter.id)
        .where(TimeEntry.is_billed.is_(False), *matter_filter)
        .order_by(TimeEntry.date, TimeEntry.created_at)
        .all()
    )
    expenses = await (
        repository.query(db, Expense)
        .join(Matter, Expense.matter_id == Matter.id)
        .where(Expense.is_billed.is_(False), *matter_filter)
        .order_by(Expense.date, Expense.created_at)
        .all()
    )
    return entries, expenses


async def create_invoice_from_unbilled(
    db: AsyncSession,
    actor: AuditContext,
    client_id: str,
    due_date: date,
    matter_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> Invoice:
    """
    Bill all unbilled time and expenses of a client (or one of its matters).

    The items are linked to the new Draft invoice and flagged billed in the
    same transaction as the invoice itself.
    """
    if await repository.find(db, Client, client_id) is None:
        raise ValidationFailed.field("client_id", "Client does not exist")

    entries, expenses = await _unbilled_for_client(db, client_id, matter_id)
    if not entries and not expenses:
        raise ValidationFailed.field("client_id", "There is no unbilled work for this client")

    total = sum((e.amount for e in entries), Decimal(0)) + sum((x.amount for x in expenses), Decimal(0))

    invoice = Invoice(
        number=await next_invoice_number(db),
        client_id=client_id,
        amount=to_money(total),
        issue_date=today_utc(),
        due_date=due_date,
        status=InvoiceStatus.DRAFT,
        notes=notes,
    )
    await repository.create(db, invoice, "Invoice number already in use, please retry", "number")

    for item in [*entries, *expenses]:
        item.invoice_id = invoice.id
        item.is_billed = True
    await repository.flush(db)

    await log_event(
        db, actor, AuditAction.CREATE, "Invoice", invoice.id,
        new_values=snapshot(invoice),
        details=(
            f"Invoice {invoice.number} created from {len(entries)} time entries "
            f"and {len(expenses)} expenses"
        ),
    )
    await db.commit()
    return invoice


async def update_invoice_status(
    db: AsyncSession,
    actor: AuditContext,
    invoice_id: str,
    status: str,
) -> Invoice:
    """Set any status; the change is audited with old and new values."""
    _validate_invoice_fields(status=status)
    invoice = await repository.get_or_404(db, Invoice, invoice_id)

    old_status = invoice.status
    invoice.status = status
    await repository.flush(db)

    await log_event(
        db, actor, AuditAction.UPDATE, "Invoice", invoice.id,
        old_values={"status": old_status},
        new_values={"status": status},
        details=f"Invoice {invoice.number} status changed from {old_status} to {status}",
    )
    await db.commit()
    return invoice


async def delete_invoice(db: AsyncSession, actor: AuditContext, invoice_id: str) -> None:
    """Delete an invoice. Linked time entries and expenses become unbilled again."""
    invoice = await repository.get_or_404(db, Invoice, invoice_id)
    old_values = snapshot(invoice)

    await db.execute(
        update(TimeEntry)
        .where(TimeEntry.invoice_id == invoice.id)
        .values(is_billed=False)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(Expense)
        .where(Expense.invoice_id == invoice.id)
        .values(is_billed=False)
        .execution_options(synchronize_session=False)
    )
    await repository.delete(db, invoice)
    await log_event(
        db, actor, AuditAction.DELETE, "Invoice", invoice_id,
        old_values=old_values,
        details=f"Invoice {old_values['number']} deleted",
    )
    await db.commit()


async def list_invoices(
    db: AsyncSession,
    status: Optional[str] = None,
    client_id: Optional[str] = None,
) -> List[Invoice]:
    return await (
        repository.query(db, Invoice)
        .filter_by(status=status, client_id=client_id)
        .include(Invoice.client)
        .order_by(Invoice.issue_date.desc(), Invoice.number.desc())
        .all()
    )


async def invoice_summary(db: AsyncSession) -> dict:
    """Count and total amount per invoice status."""
    q = repository.query(db, Invoice)
    counts = await q.group_count(Invoice.status)
    summary = {}
    for status in InvoiceStatus.ALL:
        summary[status] = {
            "count": counts.get(status, 0),
            "total": await q.where(Invoice.status == status).sum(Invoice.amount),
        }
    return summary


# =============================================================================
# PRINTING
# =============================================================================

@dataclass
class InvoiceLine:
    description: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.unit_price


def compute_invoice_totals(amount: Decimal, lines: Optional[List[InvoiceLine]] = None) -> dict:
    """
    Subtotal, VAT and total for an invoice.

    With line items the subtotal is the sum of quantity x unit price,
    otherwise the invoice amount. Total is subtotal x 1.18.
    """
    if lines:
        subtotal = to_money(sum((line.amount for line in lines), Decimal(0)))
    else:
        subtotal = to_money(amount)
    return {
        "subtotal": subtotal,
        "vat_rate": VAT_RATE,
        "vat": to_money(subtotal * VAT_RATE),
        "total": to_money(subtotal * (1 + VAT_RATE)),
    }


@dataclass
class InvoicePrint:
    """Everything the HTML and PDF renderings need."""

    invoice: Invoice
    client: Client
    lines: List[InvoiceLine] = field(default_factory=list)
    itemized: bool = False
    printed_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        self.totals = compute_invoice_totals(self.invoice.amount, self.lines if self.itemized else None)

    @property
    def subtotal(self) -> Decimal:
        return self.totals["subtotal"]

    @property
    def vat_amount(self) -> Decimal:
        return self.totals["vat"]

    @property
    def total(self) -> Decimal:
        return self.totals["total"]

    @property
    def vat_percent(self) -> int:
        return int(VAT_RATE * 100)


async def build_invoice_print(db: AsyncSession, invoice_id: str) -> InvoicePrint:
    invoice = await repository.fetch_with_includes(
        db, Invoice, invoice_id, Invoice.client, Invoice.time_entries, Invoice.expenses
    )
    if invoice is None:
        raise NotFound("Invoice", invoice_id)

    lines = [
        InvoiceLine(
            description=f"{entry.date:%d.%m.%Y} {entry.description}",
            quantity=entry.hours,
            unit_price=Decimal(entry.rate),
        )
        for entry in sorted(invoice.time_entries, key=lambda e: (e.date, e.created_at))
    ]
    lines += [
        InvoiceLine(
            description=f"{expense.date:%d.%m.%Y} {expense.category}: {expense.description}",
            quantity=Decimal(1),
            unit_price=Decimal(expense.amount),
        )
        for expense in sorted(invoice.expenses, key=lambda x: (x.date, x.created_at))
    ]
    itemized = bool(lines)
    if not itemized:
        lines = [
            InvoiceLine(
                description=invoice.notes or f"Legal services ({invoice.number})",
                quantity=Decimal(1),
                unit_price=Decimal(invoice.amount),
            )
        ]

    return InvoicePrint(invoice=invoice, client=invoice.client, lines=lines, itemized=itemized)


async def record_invoice_print(db: AsyncSession, actor: AuditContext, invoice: Invoice, fmt: str) -> None:
    await log_event(
        db, actor, AuditAction.PRINT, "Invoice", invoice.id,
        details=f"Invoice {invoice.number} printed ({fmt})",
    )
    await db.commit()


# =============================================================================
# AGGREGATES
# =============================================================================

async def time_entry_totals(db: AsyncSession, matter_id: Optional[str] = None) -> dict:
    """
    Billed and unbilled value of time entries, computed from duration and rate.

    Returns:
        {"total_billed", "total_unbilled", "total_minutes"}
    """
    stmt = select(TimeEntry.duration, TimeEntry.rate, TimeEntry.is_billed)
    if matter_id:
        stmt = stmt.where(TimeEntry.matter_id == matter_id)
    result = await db.execute(stmt)

    billed = Decimal(0)
    unbilled = Decimal(0)
    minutes = 0
    for duration, rate, is_billed in result.all():
        amount = time_entry_amount(duration, rate)
        minutes += duration or 0
        if is_billed:
            billed += amount
        else:
            unbilled += amount

    return {
        "total_billed": to_money(billed),
        "total_unbilled": to_money(unbilled),
        "total_minutes": minutes,
    }


async def billing_dashboard_totals(db: AsyncSession) -> dict:
    """Billed / unbilled time value and the sum of Overdue invoices."""
    totals = await time_entry_totals(db)
    overdue = await repository.query(db, Invoice).where(
        Invoice.status == InvoiceStatus.OVERDUE
    ).sum(Invoice.amount)
    return {
        "total_billed": totals["total_billed"],
        "total_unbilled": totals["total_unbilled"],
        "overdue_total": overdue,
    }


async def list_unbilled(db: AsyncSession) -> tuple[List[TimeEntry], List[Expense]]:
    entries = await (
        repository.query(db, TimeEntry)
        .where(TimeEntry.is_billed.is_(False))
        .include(TimeEntry.matter)
        .order_by(TimeEntry.date.desc())
        .all()
    )
    expenses = await (
        repository.query(db, Expense)
        .where(Expense.is_billed.is_(False))
        .order_by(Expense.date.desc())
        .all()
    )
    return entries, expenses


