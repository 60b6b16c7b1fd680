"""
LexLedger - CRM (Lead) Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import crm
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.schemas import ClientOut, LeadCreate, LeadListOut, LeadOut, LeadUpdate, Message

router = APIRouter(prefix="/crm", tags=["crm"], dependencies=[Depends(require_user)])


@router.get("/leads", response_model=LeadListOut)
async def list_leads(
    status: Optional[str] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return {
        "leads": await crm.list_leads(db, status=status, search=search),
        "stats": await crm.lead_stats(db),
    }


@router.get("/leads/{lead_id}", response_model=LeadOut)
async def lead_details(lead_id: str, db: AsyncSession = Depends(get_db)):
    return await crm.get_lead(db, lead_id)


@router.post("/leads", response_model=LeadOut, status_code=201)
async def create_lead(
    body: LeadCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await crm.create_lead(db, actor, body.model_dump(exclude_none=True))


@router.post("/leads/{lead_id}/edit", response_model=LeadOut)
async def edit_lead(
    lead_id: str,
    body: LeadUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await crm.update_lead(db, actor, lead_id, body.model_dump(exclude_unset=True))


@router.post("/leads/{lead_id}/convert", response_model=ClientOut, status_code=201)
async def convert_lead(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    """Create a client from the lead and mark the lead Converted."""
    return await crm.convert_lead(db, actor, lead_id, email_domain=config.LEAD_PLACEHOLDER_EMAIL_DOMAIN)


@router.post("/leads/{lead_id}/delete", response_model=Message)
async def delete_lead(
    lead_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await crm.delete_lead(db, actor, lead_id)
    return {"detail": "Lead deleted"}
