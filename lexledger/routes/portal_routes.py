"""
LexLedger - Client Portal Routes

Clients sign in with their own credentials and only ever see their own
matters, documents, invoices and messages.
"""

from typing import List

from fastapi import APIRouter, Depends, Form
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import portal
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import PORTAL_COOKIE_NAME, create_portal_token, require_client
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.models.client import Client
from lexledger.schemas import (
    ClientMessageOut,
    DocumentOut,
    InvoiceOut,
    MatterOut,
    PortalDashboardOut,
    PortalMatterOut,
    PortalMessageCreate,
)

router = APIRouter(prefix="/portal", tags=["portal"])


@router.post("/login")
async def portal_login(
    email: str = Form(...),
    password: str = Form(...),
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    client = await portal.login(db, actor, email, password)

    response = RedirectResponse(url="/portal/dashboard", status_code=303)
    response.set_cookie(
        key=PORTAL_COOKIE_NAME,
        value=create_portal_token(client),
        max_age=config.PORTAL_SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=not config.DEBUG,
    )
    return response


@router.post("/logout")
async def portal_logout(
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    client: Client = Depends(require_client),
):
    await portal.logout(db, actor, client)
    response = RedirectResponse(url="/portal/login", status_code=303)
    response.delete_cookie(PORTAL_COOKIE_NAME)
    return response


@router.get("/dashboard", response_model=PortalDashboardOut)
async def portal_dashboard(db: AsyncSession = Depends(get_db), client: Client = Depends(require_client)):
    return await portal.dashboard(db, client)


@router.get("/matters", response_model=List[MatterOut])
async def portal_matters(db: AsyncSession = Depends(get_db), client: Client = Depends(require_client)):
    return await portal.list_matters(db, client)


@router.get("/matters/{matter_id}", response_model=PortalMatterOut)
async def portal_matter_detail(
    matter_id: str,
    db: AsyncSession = Depends(get_db),
    client: Client = Depends(require_client),
):
    return await portal.get_matter(db, client, matter_id)


@router.get("/documents", response_model=List[DocumentOut])
async def portal_documents(db: AsyncSession = Depends(get_db), client: Client = Depends(require_client)):
    return await portal.list_documents(db, client)


@router.get("/invoices", response_model=List[InvoiceOut])
async def portal_invoices(db: AsyncSession = Depends(get_db), client: Client = Depends(require_client)):
    return await portal.list_invoices(db, client)


@router.get("/messages", response_model=List[ClientMessageOut])
async def portal_messages(db: AsyncSession = Depends(get_db), client: Client = Depends(require_client)):
    return await portal.list_messages(db, client)


@router.post("/messages", response_model=ClientMessageOut, status_code=201)
async def portal_send_message(
    body: PortalMessageCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    client: Client = Depends(require_client),
):
    return await portal.send_message(db, actor, client, body.subject, body.message, matter_id=body.matter_id)
