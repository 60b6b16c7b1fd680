"""
LexLedger - Tasks, Kanban Board and Task Templates

``completed_at`` is stamped when a task moves into Done from any other
status. Saving a task that is already Done, or moving it back out of Done,
leaves the stamp alone.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.errors import ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.matter import Matter
from lexledger.models.reminder import Reminder, ReminderType
from lexledger.models.task import Task, TaskPriority, TaskStatus, TaskTemplate
from lexledger.models.user import User
from lexledger.timestamps import now_utc

EDITABLE_FIELDS = (
    "title", "description", "due_date", "reminder_at", "priority", "status",
    "matter_id", "assigned_to_id",
)


@dataclass
class BoardCard:
    task: Task
    matter_name: Optional[str] = None
    assignee_name: Optional[str] = None


@dataclass
class TaskBoard:
    columns: dict = field(default_factory=lambda: {status: [] for status in TaskStatus.ALL})

    @property
    def total(self) -> int:
        return sum(len(cards) for cards in self.columns.values())


def _validate(data: dict, creating: bool = False) -> None:
    errors = {}
    if (creating or "title" in data) and not (data.get("title") or "").strip():
        errors["title"] = "Title is required"
    if data.get("priority") is not None and data["priority"] not in TaskPriority.ALL:
        errors["priority"] = f"Priority must be one of: {', '.join(TaskPriority.ALL)}"
    if data.get("status") is not None and data["status"] not in TaskStatus.ALL:
        errors["status"] = f"Status must be one of: {', '.join(TaskStatus.ALL)}"
    if errors:
        raise ValidationFailed(errors)


async def _check_references(db: AsyncSession, data: dict) -> None:
    if data.get("matter_id") and await repository.find(db, Matter, data["matter_id"]) is None:
        raise ValidationFailed.field("matter_id", "Matter does not exist")
    if data.get("assigned_to_id") and await repository.find(db, User, data["assigned_to_id"]) is None:
        raise ValidationFailed.field("assigned_to_id", "User does not exist")


def apply_status(task: Task, new_status: str, at: Optional[datetime] = None) -> None:
    """Set the status, stamping completed_at on a transition into Done."""
    if new_status == TaskStatus.DONE and task.status != TaskStatus.DONE:
        task.completed_at = at or now_utc()
    task.status = new_status


def _schedule_reminder(db: AsyncSession, task: Task) -> None:
    db.add(Reminder(
        id=repository.new_id(),
        type=ReminderType.NOTIFICATION,
        trigger_at=task.reminder_at,
        entity_type="Task",
        entity_id=task.id,
        message=f"Task due: {task.title}",
        user_id=task.assigned_to_id,
    ))


# =============================================================================
# TASKS
# =============================================================================

async def list_tasks(
    db: AsyncSession,
    status: Optional[str] = None,
    matter_id: Optional[str] = None,
    assigned_to_id: Optional[str] = None,
) -> List[Task]:
    return await (
        repository.query(db, Task)
        .filter_by(status=status, matter_id=matter_id, assigned_to_id=assigned_to_id)
        .order_by(Task.due_date.is_(None), Task.due_date, Task.created_at.desc())
        .all()
    )


async def get_task(db: AsyncSession, task_id: str) -> Task:
    return await repository.get_or_404(db, Task, task_id)


async def create_task(db: AsyncSession, actor: AuditContext, data: dict) -> Task:
    data = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    data.setdefault("priority", TaskPriority.MEDIUM)
    data.setdefault("status", TaskStatus.TODO)
    _validate(data, creating=True)
    await _check_references(db, data)

    status = data.pop("status")
    task = Task(**data)
    task.status = TaskStatus.TODO
    apply_status(task, status)

    await repository.create(db, task)
    if task.reminder_at:
        _schedule_reminder(db, task)
        await repository.flush(db)

    await log_event(
        db, actor, AuditAction.CREATE, "Task", task.id,
        new_values=snapshot(task),
        details=f"Task '{task.title}' created",
    )
    await db.commit()
    return task


async def update_task(db: AsyncSession, actor: AuditContext, task_id: str, changes: dict) -> Task:
    task = await repository.get_or_404(db, Task, task_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    _validate(changes)
    await _check_references(db, changes)

    before = snapshot(task)
    new_status = changes.pop("status", None)
    if new_status is not None:
        apply_status(task, new_status)
    reminder_changed = "reminder_at" in changes and changes["reminder_at"] != task.reminder_at
    await repository.update(db, task, changes)
    if reminder_changed and task.reminder_at:
        _schedule_reminder(db, task)
        await repository.flush(db)

    old_values, new_values = changed_values(before, snapshot(task))
    await log_event(db, actor, AuditAction.UPDATE, "Task", task.id, old_values, new_values)
    await db.commit()
    return task


async def update_task_status(db: AsyncSession, actor: AuditContext, task_id: str, status: str) -> Task:
    """Board drag-and-drop: change only the status."""
    _validate({"status": status})
    task = await repository.get_or_404(db, Task, task_id)
    old_status = task.status
    apply_status(task, status)
    await repository.flush(db)

    await log_event(
        db, actor, AuditAction.UPDATE, "Task", task.id,
        old_values={"status": old_status},
        new_values={"status": status},
        details=f"Task '{task.title}' moved from {old_status} to {status}",
    )
    await db.commit()
    return task


async def delete_task(db: AsyncSession, actor: AuditContext, task_id: str) -> None:
    task = await repository.get_or_404(db, Task, task_id)
    old_values = snapshot(task)
    await repository.delete(db, task)
    await log_event(
        db, actor, AuditAction.DELETE, "Task", task_id,
        old_values=old_values,
        details=f"Task '{old_values['title']}' deleted",
    )
    await db.commit()


async def get_board(db: AsyncSession, matter_id: Optional[str] = None) -> TaskBoard:
    """Tasks grouped into the four status columns, with names resolved."""
    stmt = (
        select(Task, Matter.name, User.name)
        .outerjoin(Matter, Task.matter_id == Matter.id)
        .outerjoin(User, Task.assigned_to_id == User.id)
        .order_by(Task.due_date.is_(None), Task.due_date, Task.created_at)
        .execution_options(populate_existing=True)
    )
    if matter_id:
        stmt = stmt.where(Task.matter_id == matter_id)

    board = TaskBoard()
    result = await db.execute(stmt)
    for task, matter_name, assignee_name in result.all():
        board.columns.setdefault(task.status, []).append(
            BoardCard(task=task, matter_name=matter_name, assignee_name=assignee_name)
        )
    return board


# =============================================================================
# TEMPLATES
# =============================================================================

def _validate_definition(items: list) -> None:
    if not isinstance(items, list) or not items:
        raise ValidationFailed.field("items", "A template needs at least one task")
    for index, item in enumerate(items):
        if not isinstance(item, dict) or not str(item.get("title") or "").strip():
            raise ValidationFailed.field("items", f"Item {index + 1} has no title")
        if item.get("priority") and item["priority"] not in TaskPriority.ALL:
            raise ValidationFailed.field("items", f"Item {index + 1} has an invalid priority")
        due_in_days = item.get("due_in_days")
        if due_in_days is not None and (not isinstance(due_in_days, int) or due_in_days < 0):
            raise ValidationFailed.field("items", f"Item {index + 1} has an invalid due_in_days")


async def list_templates(db: AsyncSession, active_only: bool = True) -> List[TaskTemplate]:
    q = repository.query(db, TaskTemplate)
    if active_only:
        q = q.where(TaskTemplate.is_active.is_(True))
    return await q.order_by(TaskTemplate.name).all()


async def create_template(
    db: AsyncSession,
    actor: AuditContext,
    name: str,
    items: list,
    category: Optional[str] = None,
) -> TaskTemplate:
    if not (name or "").strip():
        raise ValidationFailed.field("name", "Name is required")
    _validate_definition(items)

    template = TaskTemplate(name=name.strip(), category=category, definition=json.dumps(items))
    await repository.create(db, template)
    await log_event(
        db, actor, AuditAction.CREATE, "TaskTemplate", template.id,
        new_values=snapshot(template, ["name", "category", "definition"]),
    )
    await db.commit()
    return template


async def apply_template(
    db: AsyncSession,
    actor: AuditContext,
    template_id: str,
    matter_id: Optional[str] = None,
    assigned_to_id: Optional[str] = None,
) -> List[Task]:
    """Create one task per template item; all in one transaction."""
    template = await repository.get_or_404(db, TaskTemplate, template_id)
    await _check_references(db, {"matter_id": matter_id, "assigned_to_id": assigned_to_id})

    now = now_utc()
    tasks = []
    for item in template.items:
        due_in_days = item.get("due_in_days")
        task = Task(
            title=item["title"],
            description=item.get("description"),
            priority=item.get("priority") or TaskPriority.MEDIUM,
            status=TaskStatus.TODO,
            due_date=now + timedelta(days=due_in_days) if due_in_days is not None else None,
            matter_id=matter_id,
            assigned_to_id=assigned_to_id,
            template_id=template.id,
        )
        await repository.create(db, task)
        tasks.append(task)

    await log_event(
        db, actor, AuditAction.CREATE, "Task", None,
        new_values={"template_id": template.id, "task_ids": [t.id for t in tasks]},
        details=f"Applied template '{template.name}' ({len(tasks)} tasks)",
    )
    await db.commit()
    return tasks
