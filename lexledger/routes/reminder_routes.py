"""
LexLedger - Reminder Routes
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import reminders
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.schemas import DispatchOut, ReminderCreate, ReminderOut

router = APIRouter(prefix="/reminders", tags=["reminders"], dependencies=[Depends(require_user)])


@router.post("", response_model=ReminderOut, status_code=201)
async def create_reminder(
    body: ReminderCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await reminders.create_reminder(
        db, actor, body.trigger_at, body.entity_type, body.entity_id,
        type=body.type,
        message=body.message,
        user_id=body.user_id,
    )


@router.get("/due", response_model=List[ReminderOut])
async def due_reminders(db: AsyncSession = Depends(get_db)):
    return await reminders.list_due(db)


@router.post("/dispatch", response_model=DispatchOut)
async def dispatch(db: AsyncSession = Depends(get_db), config: Settings = Depends(get_settings)):
    """Deliver every due reminder now. Administrators only."""
    return await reminders.dispatch_due_reminders(db, config)


@router.post("/{reminder_id}/sent", response_model=ReminderOut)
async def mark_sent(
    reminder_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await reminders.mark_sent(db, actor, reminder_id)
