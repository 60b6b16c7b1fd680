"""
LexLedger - Task Routes

Static paths (board, templates, update-status) are declared before the
``/{task_id}`` routes so they are not captured as ids.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import tasks
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.database import get_db
from lexledger.schemas import (
    BoardOut,
    Message,
    TaskCreate,
    TaskOut,
    TaskStatusUpdate,
    TaskTemplateCreate,
    TaskTemplateOut,
    TaskUpdate,
    TemplateApply,
)

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(require_user)])


# =============================================================================
# BOARD
# =============================================================================

@router.get("/board", response_model=BoardOut)
async def task_board(matter_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    board = await tasks.get_board(db, matter_id=matter_id)
    return {"columns": board.columns, "total": board.total}


@router.post("/update-status", response_model=TaskOut)
async def update_status(
    body: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await tasks.update_task_status(db, actor, body.task_id, body.status)


# =============================================================================
# TEMPLATES
# =============================================================================

@router.get("/templates", response_model=List[TaskTemplateOut])
async def list_templates(db: AsyncSession = Depends(get_db)):
    return await tasks.list_templates(db)


@router.post("/templates", response_model=TaskTemplateOut, status_code=201)
async def create_template(
    body: TaskTemplateCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    items = [item.model_dump(exclude_none=True) for item in body.items]
    return await tasks.create_template(db, actor, body.name, items, category=body.category)


@router.post("/templates/{template_id}/apply", response_model=List[TaskOut], status_code=201)
async def apply_template(
    template_id: str,
    body: TemplateApply,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await tasks.apply_template(
        db, actor, template_id, matter_id=body.matter_id, assigned_to_id=body.assigned_to_id
    )


# =============================================================================
# TASKS
# =============================================================================

@router.get("", response_model=List[TaskOut])
async def list_tasks(
    status: Optional[str] = None,
    matter_id: Optional[str] = None,
    assigned_to_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await tasks.list_tasks(db, status=status, matter_id=matter_id, assigned_to_id=assigned_to_id)


@router.get("/{task_id}", response_model=TaskOut)
async def task_details(task_id: str, db: AsyncSession = Depends(get_db)):
    return await tasks.get_task(db, task_id)


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    body: TaskCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await tasks.create_task(db, actor, body.model_dump(exclude_none=True))


@router.post("/{task_id}/edit", response_model=TaskOut)
async def edit_task(
    task_id: str,
    body: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await tasks.update_task(db, actor, task_id, body.model_dump(exclude_unset=True))


@router.post("/{task_id}/delete", response_model=Message)
async def delete_task(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await tasks.delete_task(db, actor, task_id)
    return {"detail": "Task deleted"}
