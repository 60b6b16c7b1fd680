"""
LexLedger - Audit Service

Appends hash-chained, immutable audit rows. ``log_event`` only stages the
row in the caller's session; it is committed together with the business
change it describes, so neither can be persisted without the other.
"""

import json
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Any, TYPE_CHECKING
from sqlalchemy import select, desc, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import Request

from lexledger.models.audit import AuditLog, AuditAction
from lexledger.repository import create, query
from lexledger.timestamps import now_utc

if TYPE_CHECKING:
    from lexledger.models.user import User
    from lexledger.models.client import Client

logger = logging.getLogger(__name__)

# Never written into old/new value snapshots
REDACTED_FIELDS = {"password_hash", "portal_password_hash", "token"}

USER_AGENT_MAX_LENGTH = 500


# =============================================================================
# ACTOR CONTEXT
# =============================================================================

@dataclass(frozen=True)
class AuditContext:
    """Who did it and from where. Staff actions fill user_*, portal actions client_*."""

    user_id: Optional[str] = None
    user_email: Optional[str] = None
    client_id: Optional[str] = None
    client_email: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "AuditContext":
        principal = getattr(request.state, "principal", None)
        ip_address = request.client.host if request.client else None
        user_agent = request.headers.get("user-agent")

        if principal is not None and principal.is_client:
            return cls(
                client_id=principal.id,
                client_email=principal.email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        if principal is not None:
            return cls(
                user_id=principal.id,
                user_email=principal.email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        return cls(ip_address=ip_address, user_agent=user_agent)

    def as_user(self, user: "User") -> "AuditContext":
        return replace(self, user_id=user.id, user_email=user.email, client_id=None, client_email=None)

    def as_client(self, client: "Client") -> "AuditContext":
        return replace(self, client_id=client.id, client_email=client.email, user_id=None, user_email=None)


SYSTEM = AuditContext()


def get_audit_context(request: Request) -> AuditContext:
    """FastAPI dependency: the audit actor for the current request."""
    return AuditContext.from_request(request)


# =============================================================================
# SERIALIZATION
# =============================================================================

def snapshot(entity: Any, fields: Optional[List[str]] = None) -> dict:
    """
    Column values of an ORM entity as a plain dict (secrets removed).

    Args:
        entity: Mapped instance
        fields: Optional subset of column attribute names

    Returns:
        Dictionary suitable for ``log_event`` old/new values
    """
    mapper = inspect(entity).mapper
    names = fields or [attr.key for attr in mapper.column_attrs]
    return {
        name: getattr(entity, name)
        for name in names
        if name not in REDACTED_FIELDS
    }


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


def serialize_values(values: Optional[dict]) -> Optional[str]:
    if values is None:
        return None
    cleaned = {k: v for k, v in values.items() if k not in REDACTED_FIELDS}
    return json.dumps(cleaned, sort_keys=True, default=_json_default, ensure_ascii=False)


def changed_values(before: dict, after: dict) -> tuple[dict, dict]:
    """Reduce two snapshots to the fields that actually differ."""
    keys = [k for k in after if before.get(k) != after.get(k)]
    return {k: before.get(k) for k in keys}, {k: after.get(k) for k in keys}


# =============================================================================
# WRITING
# =============================================================================

async def log_event(
    db: AsyncSession,
    actor: Optional[AuditContext],
    action: str,
    entity_type: str,
    entity_id: Optional[str] = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    details: Optional[str] = None,
) -> AuditLog:
    """
    Stage an immutable audit log entry in the current transaction.

    Args:
        db: Database session (the one carrying the business change)
        actor: Who performed the action; ``None`` for system actions
        action: One of the ``AuditAction`` constants
        entity_type: Entity class name, e.g. "Invoice"
        entity_id: Optional id of the affected entity
        old_values: Optional state before the change
        new_values: Optional state after the change
        details: Optional human-readable description

    Returns:
        The flushed AuditLog entry
    """
    if action not in AuditAction.ALL:
        raise ValueError(f"Unknown audit action: {action}")

    actor = actor or SYSTEM

    # Chain to the previous entry
    previous_entry = await get_last_audit_entry(db)
    previous_hash = previous_entry.entry_hash if previous_entry else None
    sequence = previous_entry.sequence + 1 if previous_entry else 1

    user_agent = actor.user_agent
    if user_agent and len(user_agent) > USER_AGENT_MAX_LENGTH:
        user_agent = user_agent[:USER_AGENT_MAX_LENGTH]

    entry = AuditLog(
        sequence=sequence,
        user_id=actor.user_id,
        user_email=actor.user_email,
        client_id=actor.client_id,
        client_email=actor.client_email,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=serialize_values(old_values),
        new_values=serialize_values(new_values),
        details=details,
        ip_address=actor.ip_address,
        user_agent=user_agent,
        previous_hash=previous_hash,
        created_at=now_utc(),
    )
    entry.entry_hash = AuditLog.compute_hash(**entry.hash_fields())

    await create(db, entry, "Another change was recorded at the same time, please retry")
    return entry


# =============================================================================
# READING
# =============================================================================

async def get_last_audit_entry(db: AsyncSession) -> Optional[AuditLog]:
    """Get the most recent audit log entry."""
    result = await db.execute(
        select(AuditLog).order_by(desc(AuditLog.sequence)).limit(1)
    )
    return result.scalar_one_or_none()


async def get_entity_audit_trail(
    db: AsyncSession,
    entity_type: str,
    entity_id: str,
    limit: int = 100,
) -> List[AuditLog]:
    """All entries for one entity, oldest first."""
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.sequence.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def search_audit_logs(
    db: AsyncSession,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    user_email: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[List[AuditLog], int]:
    """
    Filtered, newest-first page of audit entries.

    Returns:
        (entries, total matching count)
    """
    q = query(db, AuditLog).filter_by(action=action, entity_type=entity_type)
    if user_email:
        q = q.where(AuditLog.user_email.ilike(f"%{user_email}%"))
    if start:
        q = q.where(AuditLog.created_at >= start)
    if end:
        q = q.where(AuditLog.created_at <= end)

    total = await q.count()
    page = max(page, 1)
    entries = await q.order_by(AuditLog.sequence.desc()).page((page - 1) * page_size, page_size).all()
    return entries, total


async def verify_audit_chain_integrity(db: AsyncSession) -> dict:
    """
    Verify the integrity of the audit log hash chain.

    Returns:
        Dictionary with verification results:
        {
            "valid": bool,
            "entries_checked": int,
            "first_invalid_sequence": int or None,
            "error": str or None
        }
    """
    result = await db.execute(
        select(AuditLog).order_by(AuditLog.sequence.asc()).execution_options(populate_existing=True)
    )
    entries = list(result.scalars().all())

    entries_checked = 0
    previous_hash = None

    for entry in entries:
        entries_checked += 1

        if not entry.verify_hash():
            logger.warning("Audit entry #%s hash mismatch", entry.sequence)
            return {
                "valid": False,
                "entries_checked": entries_checked,
                "first_invalid_sequence": entry.sequence,
                "error": f"Entry #{entry.sequence} hash mismatch - data may have been tampered",
            }

        if entry.previous_hash != previous_hash:
            logger.warning("Audit entry #%s chain broken", entry.sequence)
            return {
                "valid": False,
                "entries_checked": entries_checked,
                "first_invalid_sequence": entry.sequence,
                "error": f"Entry #{entry.sequence} chain broken - previous_hash mismatch",
            }

        previous_hash = entry.entry_hash

    return {
        "valid": True,
        "entries_checked": entries_checked,
        "first_invalid_sequence": None,
        "error": None,
    }
