"""
LexLedger - Matter Routes
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import matters
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.schemas import MatterCreate, MatterDetailOut, MatterListItemOut, MatterOut, MatterUpdate, Message

router = APIRouter(prefix="/matters", tags=["matters"], dependencies=[Depends(require_user)])


@router.get("", response_model=List[MatterListItemOut])
async def list_matters(
    status: Optional[str] = None,
    client_id: Optional[str] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await matters.list_matters(db, status=status, client_id=client_id, search=search)


@router.get("/{matter_id}", response_model=MatterDetailOut)
async def matter_details(
    matter_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    """Matter with everything attached to it. Logged as VIEW."""
    return await matters.get_matter_details(db, actor, matter_id)


@router.post("", response_model=MatterOut, status_code=201)
async def create_matter(
    body: MatterCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await matters.create_matter(db, actor, body.model_dump(exclude_none=True))


@router.post("/{matter_id}/edit", response_model=MatterOut)
async def edit_matter(
    matter_id: str,
    body: MatterUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await matters.update_matter(db, actor, matter_id, body.model_dump(exclude_unset=True))


@router.post("/{matter_id}/delete", response_model=Message)
async def delete_matter(
    matter_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    await matters.delete_matter(db, config, actor, matter_id)
    return {"detail": "Matter deleted"}
