"""
LexLedger - Billing Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import billing
from lexledger.audit import AuditContext, get_audit_context, log_event
from lexledger.auth import require_user
from lexledger.config import TEMPLATES_DIR, Settings, get_settings
from lexledger.database import get_db
from lexledger.models.audit import AuditAction
from lexledger.models.billing import InvoiceStatus
from lexledger.notifications import send_invoice_email
from lexledger.pdf_generator import format_money, generate_invoice_pdf
from lexledger.schemas import (
    InvoiceCreate,
    InvoiceDetailOut,
    InvoiceFromUnbilled,
    InvoiceListOut,
    InvoiceOut,
    InvoiceStatusUpdate,
    Message,
    NextNumberOut,
    SendEmailOut,
    UnbilledOut,
)
from lexledger.timestamps import format_local

router = APIRouter(prefix="/billing", tags=["billing"], dependencies=[Depends(require_user)])
templates = Jinja2Templates(directory=TEMPLATES_DIR)


def _detail(data: billing.InvoicePrint) -> dict:
    return {
        "invoice": data.invoice,
        "client": data.client,
        "lines": data.lines,
        "itemized": data.itemized,
        "subtotal": data.subtotal,
        "vat_percent": data.vat_percent,
        "vat_amount": data.vat_amount,
        "total": data.total,
    }


# =============================================================================
# LISTS
# =============================================================================

@router.get("/invoices", response_model=InvoiceListOut)
async def list_invoices(
    status: Optional[str] = None,
    client_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return {
        "invoices": await billing.list_invoices(db, status=status, client_id=client_id),
        "summary": await billing.invoice_summary(db),
    }


@router.get("/invoices/next-number", response_model=NextNumberOut)
async def next_number(db: AsyncSession = Depends(get_db)):
    return {"number": await billing.peek_next_invoice_number(db)}


@router.get("/unbilled", response_model=UnbilledOut)
async def unbilled(db: AsyncSession = Depends(get_db)):
    entries, expenses = await billing.list_unbilled(db)
    return {"time_entries": entries, "expenses": expenses}


# =============================================================================
# INVOICES
# =============================================================================

@router.post("/invoices", response_model=InvoiceOut, status_code=201)
async def create_invoice(
    body: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await billing.create_invoice(
        db, actor,
        client_id=body.client_id,
        amount=body.amount,
        due_date=body.due_date,
        issue_date=body.issue_date,
        status=body.status or InvoiceStatus.DRAFT,
        notes=body.notes,
    )


@router.post("/invoices/from-unbilled", response_model=InvoiceOut, status_code=201)
async def create_from_unbilled(
    body: InvoiceFromUnbilled,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await billing.create_invoice_from_unbilled(
        db, actor, body.client_id, body.due_date, matter_id=body.matter_id, notes=body.notes
    )


@router.get("/invoices/{invoice_id}", response_model=InvoiceDetailOut)
async def invoice_details(invoice_id: str, db: AsyncSession = Depends(get_db)):
    return _detail(await billing.build_invoice_print(db, invoice_id))


@router.post("/invoices/{invoice_id}/status", response_model=InvoiceOut)
async def update_status(
    invoice_id: str,
    body: InvoiceStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await billing.update_invoice_status(db, actor, invoice_id, body.status)


@router.get("/invoices/{invoice_id}/print")
async def print_invoice(
    request: Request,
    invoice_id: str,
    format: str = Query("html", pattern="^(html|pdf)$"),
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    """Printable invoice as HTML (default) or PDF."""
    data = await billing.build_invoice_print(db, invoice_id)
    await billing.record_invoice_print(db, actor, data.invoice, format)

    if format == "pdf":
        return Response(
            content=generate_invoice_pdf(data, config),
            media_type="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{data.invoice.number}.pdf"'},
        )

    return templates.TemplateResponse(
        request,
        "invoice.html",
        {
            "app_name": config.APP_NAME,
            "money": lambda amount: format_money(amount, config),
            "printed_at": format_local(data.printed_at, config.TIMEZONE),
            **_detail(data),
        },
    )


@router.post("/invoices/{invoice_id}/send", response_model=SendEmailOut)
async def send_invoice(
    invoice_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    """E-mail the invoice PDF to the client."""
    data = await billing.build_invoice_print(db, invoice_id)
    pdf_bytes = generate_invoice_pdf(data, config)
    message_id = await send_invoice_email(
        config, data.client, data.invoice, format_money(data.total, config), pdf_bytes
    )
    await log_event(
        db, actor, AuditAction.SEND_EMAIL, "Invoice", data.invoice.id,
        new_values={"to": data.client.email, "number": data.invoice.number},
        details=f"Invoice {data.invoice.number} sent to {data.client.email}",
    )
    await db.commit()
    return {"message_id": message_id}


@router.post("/invoices/{invoice_id}/delete", response_model=Message)
async def delete_invoice(
    invoice_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await billing.delete_invoice(db, actor, invoice_id)
    return {"detail": "Invoice deleted"}
