"""
LexLedger - Leads and Lead Conversion

Lead lifecycle::

    New -> Contacted -> Converted | Lost
    New -> Lost

Converted and Lost are terminal. Converted is only reachable through
``convert_lead``, which creates the client and flips the lead in one
transaction.
"""

import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.billing import check_money
from lexledger.errors import ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.client import Client, ClientStatus, ClientType, Lead, LeadStatus

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "email", "phone", "source", "status", "estimated_value", "practice_area", "notes")

ALLOWED_TRANSITIONS = {
    LeadStatus.NEW: {LeadStatus.CONTACTED, LeadStatus.LOST},
    LeadStatus.CONTACTED: {LeadStatus.LOST},
    LeadStatus.CONVERTED: set(),
    LeadStatus.LOST: set(),
}


def placeholder_email(name: str, domain: str) -> str:
    """'Ayşe Yılmaz' -> 'ayşe.yılmaz@example.com'"""
    local = name.strip().lower().replace(" ", ".")
    return f"{local}@{domain}"


def _validate(data: dict, creating: bool = False) -> None:
    errors = {}
    if (creating or "name" in data) and not (data.get("name") or "").strip():
        errors["name"] = "Name is required"
    check_money(errors, data, "estimated_value")
    if data.get("email") and "@" not in data["email"]:
        errors["email"] = "A valid email address is required"
    if errors:
        raise ValidationFailed(errors)


def check_transition(current: str, new: str) -> None:
    if new == current:
        return
    if new not in LeadStatus.ALL:
        raise ValidationFailed.field("status", f"Status must be one of: {', '.join(LeadStatus.ALL)}")
    if new == LeadStatus.CONVERTED:
        raise ValidationFailed.field("status", "Use the convert action to convert a lead")
    if new not in ALLOWED_TRANSITIONS[current]:
        raise ValidationFailed.field("status", f"A {current} lead cannot be moved to {new}")


async def list_leads(db: AsyncSession, status: Optional[str] = None, search: Optional[str] = None) -> List[Lead]:
    q = repository.query(db, Lead).filter_by(status=status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.where(or_(Lead.name.ilike(pattern), Lead.email.ilike(pattern), Lead.source.ilike(pattern)))
    return await q.order_by(Lead.created_at.desc()).all()


async def get_lead(db: AsyncSession, lead_id: str) -> Lead:
    return await repository.get_or_404(db, Lead, lead_id)


async def lead_stats(db: AsyncSession) -> dict:
    q = repository.query(db, Lead)
    return {
        "total": await q.count(),
        "new": await q.filter_by(status=LeadStatus.NEW).count(),
        "total_estimated_value": await q.sum(Lead.estimated_value),
        "converted_value": await q.filter_by(status=LeadStatus.CONVERTED).sum(Lead.estimated_value),
    }


async def create_lead(db: AsyncSession, actor: AuditContext, data: dict) -> Lead:
    data = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    data["status"] = LeadStatus.NEW
    _validate(data, creating=True)

    lead = Lead(**data)
    await repository.create(db, lead)
    await log_event(
        db, actor, AuditAction.CREATE, "Lead", lead.id,
        new_values=snapshot(lead),
        details=f"Lead '{lead.name}' created",
    )
    await db.commit()
    return lead


async def update_lead(db: AsyncSession, actor: AuditContext, lead_id: str, changes: dict) -> Lead:
    lead = await repository.get_or_404(db, Lead, lead_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    _validate(changes)
    if changes.get("status") is not None:
        check_transition(lead.status, changes["status"])
    elif "status" in changes:
        changes.pop("status")

    before = snapshot(lead)
    await repository.update(db, lead, changes)
    old_values, new_values = changed_values(before, snapshot(lead))
    await log_event(db, actor, AuditAction.UPDATE, "Lead", lead.id, old_values, new_values)
    await db.commit()
    return lead


async def delete_lead(db: AsyncSession, actor: AuditContext, lead_id: str) -> None:
    lead = await repository.get_or_404(db, Lead, lead_id)
    old_values = snapshot(lead)
    await repository.delete(db, lead)
    await log_event(db, actor, AuditAction.DELETE, "Lead", lead_id, old_values=old_values)
    await db.commit()


async def convert_lead(
    db: AsyncSession,
    actor: AuditContext,
    lead_id: str,
    email_domain: str = "example.com",
) -> Client:
    """
    Turn a lead into an active individual client.

    The client's email is the lead's own address, or a placeholder built
    from the lead's name when it has none. Two leads with the same name and
    no email therefore collide on the client email and the second
    conversion fails with ConstraintViolation.

    Raises:
        NotFound: no such lead
        ValidationFailed: the lead is already Converted or Lost
        ConstraintViolation: a client with the derived email already exists
    """
    lead = await repository.get_or_404(db, Lead, lead_id)
    if lead.status in LeadStatus.TERMINAL:
        raise ValidationFailed.field("status", f"A {lead.status} lead cannot be converted")

    email = (lead.email or "").strip().lower() or placeholder_email(lead.name, email_domain)
    client = Client(
        name=lead.name,
        email=email,
        phone=lead.phone,
        type=ClientType.INDIVIDUAL,
        status=ClientStatus.ACTIVE,
        notes=f"Converted from lead. Source: {lead.source}. Estimated value: {lead.estimated_value}",
    )
    await repository.create(db, client, "A client with this email address already exists", "email")

    old_status = lead.status
    lead.status = LeadStatus.CONVERTED
    await repository.flush(db)

    await log_event(
        db, actor, AuditAction.CONVERT, "Lead", lead.id,
        old_values={"status": old_status},
        new_values={"status": LeadStatus.CONVERTED, "client_id": client.id},
        details=f"Lead '{lead.name}' converted to client {client.id}",
    )
    await db.commit()
    logger.info("Lead %s converted to client %s", lead.id, client.id)
    return client
