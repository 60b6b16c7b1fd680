"""
LexLedger - Time Entries and Expenses
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.billing import check_money, time_entry_totals
from lexledger.errors import ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.billing import Expense, TimeEntry
from lexledger.models.matter import Matter

TIME_ENTRY_FIELDS = ("description", "duration", "rate", "date", "activity_type", "matter_id", "is_billed")
EXPENSE_FIELDS = ("description", "amount", "category", "date", "matter_id", "is_billed")


def _validate_time_entry(data: dict, creating: bool = False) -> None:
    errors = {}
    if (creating or "description" in data) and not (data.get("description") or "").strip():
        errors["description"] = "Description is required"
    if data.get("duration") is not None and int(data["duration"]) < 0:
        errors["duration"] = "Duration must not be negative"
    check_money(errors, data, "rate")
    if errors:
        raise ValidationFailed(errors)


def _validate_expense(data: dict, creating: bool = False) -> None:
    errors = {}
    if (creating or "description" in data) and not (data.get("description") or "").strip():
        errors["description"] = "Description is required"
    check_money(errors, data, "amount")
    if errors:
        raise ValidationFailed(errors)


async def _find_matter(db: AsyncSession, matter_id: Optional[str]) -> Optional[Matter]:
    if not matter_id:
        return None
    matter = await repository.find(db, Matter, matter_id)
    if matter is None:
        raise ValidationFailed.field("matter_id", "Matter does not exist")
    return matter


# =============================================================================
# TIME ENTRIES
# =============================================================================

async def list_time_entries(
    db: AsyncSession,
    matter_id: Optional[str] = None,
    is_billed: Optional[bool] = None,
) -> List[TimeEntry]:
    return await (
        repository.query(db, TimeEntry)
        .filter_by(matter_id=matter_id, is_billed=is_billed)
        .include(TimeEntry.matter)
        .order_by(TimeEntry.date.desc(), TimeEntry.created_at.desc())
        .all()
    )


async def create_time_entry(db: AsyncSession, actor: AuditContext, data: dict) -> TimeEntry:
    """
    Log time. A rate of zero on an entry with a matter takes the matter's
    billable rate.
    """
    data = {k: v for k, v in data.items() if k in TIME_ENTRY_FIELDS and v is not None}
    _validate_time_entry(data, creating=True)
    matter = await _find_matter(db, data.get("matter_id"))
    if matter is not None and not Decimal(data.get("rate") or 0):
        data["rate"] = matter.billable_rate

    entry = TimeEntry(**data)
    await repository.create(db, entry)
    await log_event(
        db, actor, AuditAction.CREATE, "TimeEntry", entry.id,
        new_values=snapshot(entry),
        details=f"{entry.duration} minutes logged",
    )
    await db.commit()
    return entry


async def update_time_entry(db: AsyncSession, actor: AuditContext, entry_id: str, changes: dict) -> TimeEntry:
    entry = await repository.get_or_404(db, TimeEntry, entry_id)
    changes = {k: v for k, v in changes.items() if k in TIME_ENTRY_FIELDS}
    _validate_time_entry(changes)
    if changes.get("matter_id"):
        await _find_matter(db, changes["matter_id"])

    before = snapshot(entry)
    await repository.update(db, entry, changes)
    old_values, new_values = changed_values(before, snapshot(entry))
    await log_event(db, actor, AuditAction.UPDATE, "TimeEntry", entry.id, old_values, new_values)
    await db.commit()
    return entry


async def mark_time_entries_billed(db: AsyncSession, actor: AuditContext, entry_ids: List[str]) -> int:
    """Flag the given entries billed. Returns how many rows changed."""
    ids = [i for i in dict.fromkeys(entry_ids) if i]
    if not ids:
        raise ValidationFailed.field("entry_ids", "Select at least one time entry")

    result = await db.execute(
        update(TimeEntry)
        .where(TimeEntry.id.in_(ids), TimeEntry.is_billed.is_(False))
        .values(is_billed=True)
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount or 0

    await log_event(
        db, actor, AuditAction.UPDATE, "TimeEntry", None,
        new_values={"is_billed": True, "ids": ids},
        details=f"{count} time entries marked as billed",
    )
    await db.commit()
    return count


async def delete_time_entry(db: AsyncSession, actor: AuditContext, entry_id: str) -> None:
    entry = await repository.get_or_404(db, TimeEntry, entry_id)
    old_values = snapshot(entry)
    await repository.delete(db, entry)
    await log_event(db, actor, AuditAction.DELETE, "TimeEntry", entry_id, old_values=old_values)
    await db.commit()


# =============================================================================
# EXPENSES
# =============================================================================

async def list_expenses(db: AsyncSession, matter_id: Optional[str] = None) -> List[Expense]:
    return await (
        repository.query(db, Expense)
        .filter_by(matter_id=matter_id)
        .order_by(Expense.date.desc(), Expense.created_at.desc())
        .all()
    )


async def create_expense(db: AsyncSession, actor: AuditContext, data: dict) -> Expense:
    data = {k: v for k, v in data.items() if k in EXPENSE_FIELDS and v is not None}
    _validate_expense(data, creating=True)
    await _find_matter(db, data.get("matter_id"))

    expense = Expense(**data)
    await repository.create(db, expense)
    await log_event(
        db, actor, AuditAction.CREATE, "Expense", expense.id,
        new_values=snapshot(expense),
    )
    await db.commit()
    return expense


async def delete_expense(db: AsyncSession, actor: AuditContext, expense_id: str) -> None:
    expense = await repository.get_or_404(db, Expense, expense_id)
    old_values = snapshot(expense)
    await repository.delete(db, expense)
    await log_event(db, actor, AuditAction.DELETE, "Expense", expense_id, old_values=old_values)
    await db.commit()


async def time_overview(db: AsyncSession, matter_id: Optional[str] = None) -> dict:
    """Data for the time & expenses page: entries, expenses and totals."""
    entries = await list_time_entries(db, matter_id=matter_id)
    expenses = await list_expenses(db, matter_id=matter_id)
    totals = await time_entry_totals(db, matter_id)
    totals["total_expenses"] = await repository.query(db, Expense).filter_by(matter_id=matter_id).sum(Expense.amount)
    return {"entries": entries, "expenses": expenses, "totals": totals}
