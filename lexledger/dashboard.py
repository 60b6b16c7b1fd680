"""
LexLedger - Staff Dashboard
"""

from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.billing import billing_dashboard_totals
from lexledger.calendar_events import upcoming_events
from lexledger.models.client import Client
from lexledger.models.matter import Matter, MatterStatus
from lexledger.models.task import Task, TaskStatus


async def get_dashboard(db: AsyncSession) -> dict:
    """Everything the dashboard shows, recomputed on every call."""
    matters = repository.query(db, Matter)
    by_status = await matters.group_count(Matter.status)

    return {
        "total_clients": await repository.query(db, Client).count(),
        "active_matters": await matters.where(Matter.status != MatterStatus.CLOSED).count(),
        "pending_tasks": await repository.query(db, Task).where(Task.status != TaskStatus.DONE).count(),
        "billing": await billing_dashboard_totals(db),
        "upcoming_events": await upcoming_events(db, days=7, limit=5),
        "recent_tasks": await repository.query(db, Task).order_by(Task.created_at.desc()).page(0, 5).all(),
        "recent_matters": await matters.order_by(Matter.created_at.desc()).page(0, 5).all(),
        "matters_by_status": {status: by_status.get(status, 0) for status in MatterStatus.ALL},
    }
