"""
LexLedger - Calendar Routes
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import calendar_events
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.database import get_db
from lexledger.errors import ValidationFailed
from lexledger.schemas import EventCreate, EventOut, EventUpdate, Message, MonthViewOut
from lexledger.timestamps import now_utc

router = APIRouter(prefix="/calendar", tags=["calendar"], dependencies=[Depends(require_user)])


@router.get("", response_model=MonthViewOut)
async def month_view(
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
):
    """Events and open task deadlines of one month (default: this month)."""
    today = now_utc()
    year = year or today.year
    month = month or today.month
    items = await calendar_events.month_view(db, year, month)
    return {"year": year, "month": month, "items": items}


@router.get("/events", response_model=List[EventOut])
async def list_events(start: datetime, end: datetime, db: AsyncSession = Depends(get_db)):
    if end <= start:
        raise ValidationFailed.field("end", "End must be after start")
    return await calendar_events.get_events(db, start, end)


@router.post("", response_model=EventOut, status_code=201)
async def create_event(
    body: EventCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await calendar_events.create_event(db, actor, body.model_dump(exclude_none=True))


@router.post("/{event_id}/edit", response_model=EventOut)
async def edit_event(
    event_id: str,
    body: EventUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await calendar_events.update_event(db, actor, event_id, body.model_dump(exclude_unset=True))


@router.post("/{event_id}/delete", response_model=Message)
async def delete_event(
    event_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await calendar_events.delete_event(db, actor, event_id)
    return {"detail": "Event deleted"}
