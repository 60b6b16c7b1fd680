"""
LexLedger - Client Management
"""

from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.auth import hash_password, validate_new_password
from lexledger.config import Settings
from lexledger.documents import remove_stored_files, stored_files_for_client
from lexledger.errors import NotFound, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.client import Client, ClientStatus, ClientType

DUPLICATE_EMAIL = "A client with this email address already exists"

EDITABLE_FIELDS = (
    "name", "email", "phone", "mobile", "company", "type", "status",
    "address", "city", "country", "tax_id", "notes", "portal_access",
)


def _validate(data: dict) -> None:
    errors = {}
    if "name" in data and not (data["name"] or "").strip():
        errors["name"] = "Name is required"
    if "email" in data and "@" not in (data["email"] or ""):
        errors["email"] = "A valid email address is required"
    if data.get("type") is not None and data["type"] not in ClientType.ALL:
        errors["type"] = f"Type must be one of: {', '.join(ClientType.ALL)}"
    if data.get("status") is not None and data["status"] not in ClientStatus.ALL:
        errors["status"] = f"Status must be one of: {', '.join(ClientStatus.ALL)}"
    if errors:
        raise ValidationFailed(errors)


async def list_clients(
    db: AsyncSession,
    status: Optional[str] = None,
    client_type: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Client]:
    q = repository.query(db, Client).filter_by(status=status, type=client_type)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.where(or_(
            Client.name.ilike(pattern),
            Client.email.ilike(pattern),
            Client.company.ilike(pattern),
            Client.phone.ilike(pattern),
        ))
    return await q.order_by(Client.name).all()


async def get_client_details(db: AsyncSession, client_id: str) -> Client:
    """Client with its matters and invoices loaded."""
    client = await repository.fetch_with_includes(db, Client, client_id, Client.matters, Client.invoices)
    if client is None:
        raise NotFound("Client", client_id)
    return client


async def create_client(
    db: AsyncSession,
    actor: AuditContext,
    data: dict,
    portal_password: Optional[str] = None,
) -> Client:
    """
    Create a client.

    A duplicate email surfaces as ConstraintViolation on the ``email`` field.
    """
    data = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    data.setdefault("type", ClientType.INDIVIDUAL)
    data.setdefault("status", ClientStatus.ACTIVE)
    _validate({"name": data.get("name"), "email": data.get("email"), **data})
    data["email"] = data["email"].strip().lower()

    client = Client(**data)
    if portal_password:
        validate_new_password(portal_password, field="portal_password")
        client.portal_password_hash = hash_password(portal_password)

    await repository.create(db, client, DUPLICATE_EMAIL, "email")
    await log_event(
        db, actor, AuditAction.CREATE, "Client", client.id,
        new_values=snapshot(client),
        details=f"Client '{client.name}' created",
    )
    await db.commit()
    return client


async def update_client(
    db: AsyncSession,
    actor: AuditContext,
    client_id: str,
    changes: dict,
    portal_password: Optional[str] = None,
) -> Client:
    client = await repository.get_or_404(db, Client, client_id)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    _validate(changes)
    if changes.get("email"):
        changes["email"] = changes["email"].strip().lower()

    before = snapshot(client)
    await repository.update(db, client, changes, DUPLICATE_EMAIL, "email")
    if portal_password:
        validate_new_password(portal_password, field="portal_password")
        client.portal_password_hash = hash_password(portal_password)
        await repository.flush(db)

    old_values, new_values = changed_values(before, snapshot(client))
    await log_event(
        db, actor, AuditAction.UPDATE, "Client", client.id,
        old_values=old_values,
        new_values=new_values,
        details="Portal password changed" if portal_password else None,
    )
    await db.commit()
    return client


async def delete_client(db: AsyncSession, config: Settings, actor: AuditContext, client_id: str) -> None:
    """
    Delete a client; matters, invoices, messages and notifications go with it.
    Stored files of the matters' documents are removed after the commit.
    """
    client = await repository.get_or_404(db, Client, client_id)
    stored_files = await stored_files_for_client(db, client_id)
    old_values = snapshot(client)
    await repository.delete(db, client)
    await log_event(
        db, actor, AuditAction.DELETE, "Client", client_id,
        old_values=old_values,
        details=f"Client '{old_values['name']}' deleted",
    )
    await db.commit()
    remove_stored_files(config, stored_files)
