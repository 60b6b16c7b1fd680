"""
LexLedger - Matter Management
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.billing import check_money
from lexledger.config import Settings
from lexledger.documents import remove_stored_files, stored_files_for_matter
from lexledger.errors import NotFound, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.client import Client
from lexledger.models.document import Document
from lexledger.models.matter import FeeStructure, Matter, MatterStatus
from lexledger.models.task import Task

EDITABLE_FIELDS = (
    "case_number", "name", "practice_area", "status", "fee_structure",
    "responsible_attorney", "description", "billable_rate", "trust_balance",
    "client_id", "open_date",
)


@dataclass
class MatterListItem:
    """One row of the matter list, with counts resolved up front."""

    matter: Matter
    client_name: str
    task_count: int
    document_count: int


def _validate(data: dict, creating: bool = False) -> None:
    errors = {}
    required = ("case_number", "name", "practice_area", "responsible_attorney", "client_id")
    for name in required:
        if (creating or name in data) and not data.get(name):
            errors[name] = "This field is required"
    if data.get("status") is not None and data["status"] not in MatterStatus.ALL:
        errors["status"] = f"Status must be one of: {', '.join(MatterStatus.ALL)}"
    if data.get("fee_structure") is not None and data["fee_structure"] not in FeeStructure.ALL:
        errors["fee_structure"] = f"Fee structure must be one of: {', '.join(FeeStructure.ALL)}"
    check_money(errors, data, "billable_rate", "trust_balance")
    if errors:
        raise ValidationFailed(errors)


async def _require_client(db: AsyncSession, client_id: str) -> None:
    if await repository.find(db, Client, client_id) is None:
        raise ValidationFailed.field("client_id", "Client does not exist")


async def list_matters(
    db: AsyncSession,
    status: Optional[str] = None,
    client_id: Optional[str] = None,
    search: Optional[str] = None,
) -> List[MatterListItem]:
    task_counts = (
        select(Task.matter_id, func.count(Task.id).label("n"))
        .group_by(Task.matter_id)
        .subquery()
    )
    doc_counts = (
        select(Document.matter_id, func.count(Document.id).label("n"))
        .group_by(Document.matter_id)
        .subquery()
    )
    stmt = (
        select(
            Matter,
            Client.name,
            func.coalesce(task_counts.c.n, 0),
            func.coalesce(doc_counts.c.n, 0),
        )
        .join(Client, Matter.client_id == Client.id)
        .outerjoin(task_counts, task_counts.c.matter_id == Matter.id)
        .outerjoin(doc_counts, doc_counts.c.matter_id == Matter.id)
        .order_by(Matter.open_date.desc())
    )
    if status:
        stmt = stmt.where(Matter.status == status)
    if client_id:
        stmt = stmt.where(Matter.client_id == client_id)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(Matter.name.ilike(pattern), Matter.case_number.ilike(pattern)))

    result = await db.execute(stmt.execution_options(populate_existing=True))
    return [
        MatterListItem(matter=m, client_name=name, task_count=int(tasks), document_count=int(docs))
        for m, name, tasks, docs in result.all()
    ]


async def get_matter_details(db: AsyncSession, actor: Optional[AuditContext], matter_id: str) -> Matter:
    """
    Matter with client, tasks, time, expenses, events and documents loaded.

    Opening the details is logged as VIEW when an actor is given.
    """
    matter = await repository.fetch_with_includes(
        db, Matter, matter_id,
        Matter.client, Matter.tasks, Matter.time_entries, Matter.expenses,
        Matter.events, Matter.documents,
    )
    if matter is None:
        raise NotFound("Matter", matter_id)

    if actor is not None:
        await log_event(
            db, actor, AuditAction.VIEW, "Matter", matter.id,
            details=f"Viewed matter {matter.case_number}",
        )
        await db.commit()
    return matter


async def create_matter(db: AsyncSession, actor: AuditContext, data: dict) -> Matter:
    data = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    data.setdefault("status", MatterStatus.OPEN)
    data.setdefault("fee_structure", FeeStructure.HOURLY)
    _validate(data, creating=True)
    await _require_client(db, data["client_id"])

    matter = Matter(**data)
    await repository.create(db, matter)
    await log_event(
        db, actor, AuditAction.CREATE, "Matter", matter.id,
        new_values=snapshot(matter),
        details=f"Matter {matter.case_number} opened",
    )
    await db.commit()
    return matter


async def update_matter(db: AsyncSession, actor: AuditContext, matter_id: str, changes: dict) -> Matter:
    matter = await repository.get_or_404(db, Matter, matter_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    _validate(changes)
    if "client_id" in changes and changes["client_id"] != matter.client_id:
        await _require_client(db, changes["client_id"])

    before = snapshot(matter)
    await repository.update(db, matter, changes)
    old_values, new_values = changed_values(before, snapshot(matter))
    await log_event(
        db, actor, AuditAction.UPDATE, "Matter", matter.id,
        old_values=old_values,
        new_values=new_values,
    )
    await db.commit()
    return matter


async def delete_matter(db: AsyncSession, config: Settings, actor: AuditContext, matter_id: str) -> None:
    """
    Delete a matter. Its documents are removed together with their stored
    files; tasks, time entries, expenses and events stay with ``matter_id``
    cleared.
    """
    matter = await repository.get_or_404(db, Matter, matter_id)
    stored_files = await stored_files_for_matter(db, matter_id)
    old_values = snapshot(matter)
    await repository.delete(db, matter)
    await log_event(
        db, actor, AuditAction.DELETE, "Matter", matter_id,
        old_values=old_values,
        details=f"Matter {old_values['case_number']} deleted",
    )
    await db.commit()
    remove_stored_files(config, stored_files)
