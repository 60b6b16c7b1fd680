"""
LexLedger - Client Routes
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import clients
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.schemas import ClientCreate, ClientDetailOut, ClientOut, ClientUpdate, Message

router = APIRouter(prefix="/clients", tags=["clients"], dependencies=[Depends(require_user)])


@router.get("", response_model=List[ClientOut])
async def list_clients(
    status: Optional[str] = None,
    type: Optional[str] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await clients.list_clients(db, status=status, client_type=type, search=search)


@router.get("/{client_id}", response_model=ClientDetailOut)
async def client_details(client_id: str, db: AsyncSession = Depends(get_db)):
    return await clients.get_client_details(db, client_id)


@router.post("", response_model=ClientOut, status_code=201)
async def create_client(
    body: ClientCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    data = body.model_dump(exclude={"portal_password"}, exclude_none=True)
    return await clients.create_client(db, actor, data, portal_password=body.portal_password)


@router.post("/{client_id}/edit", response_model=ClientOut)
async def edit_client(
    client_id: str,
    body: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    changes = body.model_dump(exclude={"portal_password"}, exclude_unset=True)
    return await clients.update_client(db, actor, client_id, changes, portal_password=body.portal_password)


@router.post("/{client_id}/delete", response_model=Message)
async def delete_client(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    await clients.delete_client(db, config, actor, client_id)
    return {"detail": "Client deleted"}
