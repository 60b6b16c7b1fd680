"""
LexLedger - Audit Log Model

Append-only trail of state-changing actions. Each row hashes its own content
together with the previous row's hash, so edits made outside the application
break the chain and show up in verification.
"""

import hashlib
import json
from datetime import datetime
from typing import Optional, Any
from sqlalchemy import String, Integer, DateTime, Text, event
from sqlalchemy.orm import Mapped, mapped_column
from lexledger.database import Base
from lexledger.models.base import uuid_pk
from lexledger.timestamps import now_utc


class AuditAction:
    """Action vocabulary. Values are stored verbatim and must not change."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    CLIENT_LOGIN = "CLIENT_LOGIN"
    CLIENT_LOGOUT = "CLIENT_LOGOUT"
    CONVERT = "CONVERT"
    UPLOAD = "UPLOAD"
    DOWNLOAD = "DOWNLOAD"
    PRINT = "PRINT"
    SEND_MESSAGE = "SEND_MESSAGE"
    SEND_EMAIL = "SEND_EMAIL"
    REPLY_MESSAGE = "REPLY_MESSAGE"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    AI_GENERATE = "AI_GENERATE"
    CREATE_ZOOM_MEETING = "CREATE_ZOOM_MEETING"
    CREATE_GOOGLE_MEET = "CREATE_GOOGLE_MEET"

    ALL = (
        CREATE, UPDATE, DELETE, VIEW, LOGIN, LOGOUT, CLIENT_LOGIN, CLIENT_LOGOUT,
        CONVERT, UPLOAD, DOWNLOAD, PRINT, SEND_MESSAGE, SEND_EMAIL, REPLY_MESSAGE,
        CHANGE_PASSWORD, AI_GENERATE, CREATE_ZOOM_MEETING, CREATE_GOOGLE_MEET,
    )


class AuditLogImmutableError(Exception):
    """Raised when code tries to change or remove a written audit row."""


class AuditLog(Base):
    """
    Immutable audit log entry with hash-chain integrity.

    ``sequence`` is unique and strictly increasing: two writers that read the
    same predecessor collide on it instead of forking the chain.
    """

    __tablename__ = "audit_logs"

    id: Mapped[str] = uuid_pk()
    sequence: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, index=True)

    # Actor: a staff user or, for portal actions, a client
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    client_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Event details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    old_values: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON
    new_values: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Request context
    ip_address: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Hash chain (SHA-256 hex)
    previous_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog #{self.sequence}: {self.action} {self.entity_type}>"

    @property
    def old_data(self) -> Optional[Any]:
        return _loads(self.old_values)

    @property
    def new_data(self) -> Optional[Any]:
        return _loads(self.new_values)

    def hash_fields(self) -> dict:
        return {
            "sequence": self.sequence,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "client_id": self.client_id,
            "client_email": self.client_email,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "details": self.details,
            "ip_address": self.ip_address,
            "previous_hash": self.previous_hash,
            "created_at": self.created_at,
        }

    @staticmethod
    def compute_hash(**fields: Any) -> str:
        """
        Compute the SHA-256 hash of the entry fields.

        Keys are sorted and separators fixed so the same content always
        hashes to the same value.
        """
        data = dict(fields)
        data["previous_hash"] = data.get("previous_hash") or ""
        created_at = data.get("created_at")
        if isinstance(created_at, datetime):
            data["created_at"] = created_at.isoformat()

        canonical_string = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return hashlib.sha256(canonical_string.encode("utf-8")).hexdigest()

    def verify_hash(self) -> bool:
        """Verify that this entry's hash is valid."""
        return self.compute_hash(**self.hash_fields()) == self.entry_hash


def _loads(value: Optional[str]) -> Optional[Any]:
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return None


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit entry {target.id} cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit entry {target.id} cannot be deleted")
