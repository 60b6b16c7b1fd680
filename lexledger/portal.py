"""
LexLedger - Client Portal

Every read here is scoped to one client. A matter, document or invoice that
belongs to someone else is reported as not found, never as forbidden.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, log_event
from lexledger.auth import authenticate_client
from lexledger.errors import NotFound, Unauthorized, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.billing import Invoice, InvoiceStatus
from lexledger.models.client import Client
from lexledger.models.communication import ClientMessage, Notification
from lexledger.models.document import Document
from lexledger.models.matter import Matter, MatterStatus
from lexledger.timestamps import now_utc

logger = logging.getLogger(__name__)


async def login(db: AsyncSession, actor: AuditContext, email: str, password: str) -> Client:
    client = await authenticate_client(db, email, password)
    if client is None:
        logger.info("Failed portal login attempt")
        raise Unauthorized("Invalid email or password")

    client.last_login_at = now_utc()
    await repository.flush(db)
    await log_event(
        db, actor.as_client(client), AuditAction.CLIENT_LOGIN, "Client", client.id,
        details="Client logged in to the portal",
    )
    await db.commit()
    return client


async def logout(db: AsyncSession, actor: AuditContext, client: Client) -> None:
    await log_event(
        db, actor.as_client(client), AuditAction.CLIENT_LOGOUT, "Client", client.id,
        details="Client logged out of the portal",
    )
    await db.commit()


async def dashboard(db: AsyncSession, client: Client) -> dict:
    matters = repository.query(db, Matter).filter_by(client_id=client.id)
    invoices = repository.query(db, Invoice).filter_by(client_id=client.id)
    return {
        "client": client,
        "active_matters": await matters.where(Matter.status != MatterStatus.CLOSED).count(),
        "invoice_count": await invoices.count(),
        "pending_amount": await invoices.where(Invoice.status.in_(InvoiceStatus.OUTSTANDING)).sum(Invoice.amount),
        "unread_notifications": await (
            repository.query(db, Notification)
            .filter_by(client_id=client.id)
            .where(Notification.read.is_(False))
            .count()
        ),
    }


async def list_matters(db: AsyncSession, client: Client) -> List[Matter]:
    return await (
        repository.query(db, Matter)
        .filter_by(client_id=client.id)
        .order_by(Matter.open_date.desc())
        .all()
    )


async def get_matter(db: AsyncSession, client: Client, matter_id: str) -> Matter:
    """The client's own matter with its documents and events."""
    matter = await repository.fetch_with_includes(db, Matter, matter_id, Matter.documents, Matter.events)
    if matter is None or matter.client_id != client.id:
        raise NotFound("Matter", matter_id)
    return matter


async def list_documents(db: AsyncSession, client: Client) -> List[Document]:
    return await (
        repository.query(db, Document)
        .join(Matter, Document.matter_id == Matter.id)
        .where(Matter.client_id == client.id)
        .order_by(Document.created_at.desc())
        .all()
    )


async def list_invoices(db: AsyncSession, client: Client) -> List[Invoice]:
    return await (
        repository.query(db, Invoice)
        .filter_by(client_id=client.id)
        .order_by(Invoice.issue_date.desc(), Invoice.number.desc())
        .all()
    )


async def list_messages(db: AsyncSession, client: Client) -> List[ClientMessage]:
    return await (
        repository.query(db, ClientMessage)
        .filter_by(client_id=client.id)
        .order_by(ClientMessage.created_at.desc())
        .all()
    )


async def send_message(
    db: AsyncSession,
    actor: AuditContext,
    client: Client,
    subject: str,
    message: str,
    matter_id: Optional[str] = None,
) -> ClientMessage:
    errors = {}
    if not (subject or "").strip():
        errors["subject"] = "Subject is required"
    if not (message or "").strip():
        errors["message"] = "Message is required"
    if errors:
        raise ValidationFailed(errors)
    if matter_id:
        matter = await repository.find(db, Matter, matter_id)
        if matter is None or matter.client_id != client.id:
            raise ValidationFailed.field("matter_id", "Matter does not exist")

    client_message = ClientMessage(
        client_id=client.id,
        matter_id=matter_id,
        subject=subject.strip(),
        message=message,
    )
    await repository.create(db, client_message)
    await log_event(
        db, actor.as_client(client), AuditAction.SEND_MESSAGE, "ClientMessage", client_message.id,
        new_values={"subject": client_message.subject, "matter_id": matter_id},
        details="Message sent from the portal",
    )
    await db.commit()
    return client_message
