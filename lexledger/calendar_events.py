"""
LexLedger - Calendar

The month view merges stored events with the due dates of open tasks. Task
deadlines are not stored as events; they appear with an id of
``task-<task id>`` and type Deadline.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.errors import ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.calendar import CalendarEvent, EventType
from lexledger.models.matter import Matter
from lexledger.models.task import Task, TaskStatus
from lexledger.timestamps import month_bounds, now_utc

EDITABLE_FIELDS = ("title", "date", "type", "location", "description", "matter_id")


@dataclass
class CalendarItem:
    id: str
    title: str
    date: datetime
    type: str
    matter_id: Optional[str] = None
    location: Optional[str] = None
    is_task: bool = False


def _validate(data: dict, creating: bool = False) -> None:
    errors = {}
    if (creating or "title" in data) and not (data.get("title") or "").strip():
        errors["title"] = "Title is required"
    if (creating or "date" in data) and data.get("date") is None:
        errors["date"] = "Date is required"
    if data.get("type") is not None and data["type"] not in EventType.ALL:
        errors["type"] = f"Type must be one of: {', '.join(EventType.ALL)}"
    if errors:
        raise ValidationFailed(errors)


async def get_events(db: AsyncSession, start: datetime, end: datetime) -> List[CalendarEvent]:
    """Stored events in [start, end)."""
    return await (
        repository.query(db, CalendarEvent)
        .where(CalendarEvent.date >= start, CalendarEvent.date < end)
        .order_by(CalendarEvent.date)
        .all()
    )


async def month_view(db: AsyncSession, year: int, month: int) -> List[CalendarItem]:
    if not 1 <= month <= 12:
        raise ValidationFailed.field("month", "Month must be between 1 and 12")
    start, end = month_bounds(year, month)

    items = [
        CalendarItem(
            id=event.id,
            title=event.title,
            date=event.date,
            type=event.type,
            matter_id=event.matter_id,
            location=event.location,
        )
        for event in await get_events(db, start, end)
    ]

    tasks = await (
        repository.query(db, Task)
        .where(
            Task.due_date.is_not(None),
            Task.due_date >= start,
            Task.due_date < end,
            Task.status != TaskStatus.DONE,
        )
        .all()
    )
    items += [
        CalendarItem(
            id=f"task-{task.id}",
            title=task.title,
            date=task.due_date,
            type=EventType.DEADLINE,
            matter_id=task.matter_id,
            is_task=True,
        )
        for task in tasks
    ]
    return sorted(items, key=lambda item: item.date)


async def upcoming_events(db: AsyncSession, days: int = 7, limit: int = 5) -> List[CalendarEvent]:
    now = now_utc()
    end = now + timedelta(days=days)
    return await (
        repository.query(db, CalendarEvent)
        .where(CalendarEvent.date >= now, CalendarEvent.date < end)
        .order_by(CalendarEvent.date)
        .page(0, limit)
        .all()
    )


async def create_event(db: AsyncSession, actor: AuditContext, data: dict) -> CalendarEvent:
    data = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    data.setdefault("type", EventType.MEETING)
    _validate(data, creating=True)
    if data.get("matter_id") and await repository.find(db, Matter, data["matter_id"]) is None:
        raise ValidationFailed.field("matter_id", "Matter does not exist")

    event = CalendarEvent(**data)
    await repository.create(db, event)
    await log_event(
        db, actor, AuditAction.CREATE, "CalendarEvent", event.id,
        new_values=snapshot(event),
    )
    await db.commit()
    return event


async def update_event(db: AsyncSession, actor: AuditContext, event_id: str, changes: dict) -> CalendarEvent:
    event = await repository.get_or_404(db, CalendarEvent, event_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    _validate(changes)
    if changes.get("matter_id") and await repository.find(db, Matter, changes["matter_id"]) is None:
        raise ValidationFailed.field("matter_id", "Matter does not exist")

    before = snapshot(event)
    await repository.update(db, event, changes)
    old_values, new_values = changed_values(before, snapshot(event))
    await log_event(db, actor, AuditAction.UPDATE, "CalendarEvent", event.id, old_values, new_values)
    await db.commit()
    return event


async def delete_event(db: AsyncSession, actor: AuditContext, event_id: str) -> None:
    event = await repository.get_or_404(db, CalendarEvent, event_id)
    old_values = snapshot(event)
    await repository.delete(db, event)
    await log_event(db, actor, AuditAction.DELETE, "CalendarEvent", event_id, old_values=old_values)
    await db.commit()
