"""
LexLedger - Time and Expense Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import time_tracking
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.database import get_db
from lexledger.schemas import (
    ExpenseCreate,
    ExpenseOut,
    MarkBilledOut,
    MarkBilledRequest,
    Message,
    TimeEntryCreate,
    TimeEntryOut,
    TimeEntryUpdate,
    TimeOverviewOut,
)

router = APIRouter(prefix="/time", tags=["time"], dependencies=[Depends(require_user)])


@router.get("", response_model=TimeOverviewOut)
async def time_index(matter_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return await time_tracking.time_overview(db, matter_id=matter_id)


# =============================================================================
# TIME ENTRIES
# =============================================================================

@router.post("/entries", response_model=TimeEntryOut, status_code=201)
async def create_entry(
    body: TimeEntryCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await time_tracking.create_time_entry(db, actor, body.model_dump(exclude_none=True))


@router.post("/entries/mark-billed", response_model=MarkBilledOut)
async def mark_billed(
    body: MarkBilledRequest,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    count = await time_tracking.mark_time_entries_billed(db, actor, body.entry_ids)
    return {"updated": count}


@router.post("/entries/{entry_id}/edit", response_model=TimeEntryOut)
async def edit_entry(
    entry_id: str,
    body: TimeEntryUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await time_tracking.update_time_entry(db, actor, entry_id, body.model_dump(exclude_unset=True))


@router.post("/entries/{entry_id}/delete", response_model=Message)
async def delete_entry(
    entry_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await time_tracking.delete_time_entry(db, actor, entry_id)
    return {"detail": "Time entry deleted"}


# =============================================================================
# EXPENSES
# =============================================================================

@router.post("/expenses", response_model=ExpenseOut, status_code=201)
async def create_expense(
    body: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await time_tracking.create_expense(db, actor, body.model_dump(exclude_none=True))


@router.post("/expenses/{expense_id}/delete", response_model=Message)
async def delete_expense(
    expense_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await time_tracking.delete_expense(db, actor, expense_id)
    return {"detail": "Expense deleted"}
