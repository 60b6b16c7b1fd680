"""
LexLedger - Client and Lead Models
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import String, Boolean, DateTime, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from lexledger.database import Base
from lexledger.models.base import Money, ZERO, uuid_pk
from lexledger.timestamps import now_utc

if TYPE_CHECKING:
    from lexledger.models.matter import Matter
    from lexledger.models.billing import Invoice


class ClientType:
    INDIVIDUAL = "Individual"
    CORPORATE = "Corporate"

    ALL = (INDIVIDUAL, CORPORATE)


class ClientStatus:
    ACTIVE = "Active"
    INACTIVE = "Inactive"

    ALL = (ACTIVE, INACTIVE)


class Client(Base):
    """A client of the firm. May log into the portal when enabled."""

    __tablename__ = "clients"

    id: Mapped[str] = uuid_pk()

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=ClientType.INDIVIDUAL)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ClientStatus.ACTIVE)

    # Address / tax
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tax_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Portal
    portal_access: Mapped[bool] = mapped_column(Boolean, default=False)
    portal_password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc)

    # Read-only navigation, only populated through explicit includes
    matters: Mapped[List["Matter"]] = relationship(viewonly=True, lazy="raise")
    invoices: Mapped[List["Invoice"]] = relationship(viewonly=True, lazy="raise")

    @property
    def can_use_portal(self) -> bool:
        return bool(self.portal_access and self.portal_password_hash)

    def __repr__(self) -> str:
        return f"<Client {self.email}>"


class LeadStatus:
    NEW = "New"
    CONTACTED = "Contacted"
    CONVERTED = "Converted"
    LOST = "Lost"

    ALL = (NEW, CONTACTED, CONVERTED, LOST)
    TERMINAL = (CONVERTED, LOST)


class Lead(Base):
    """A prospective client."""

    __tablename__ = "leads"
    __table_args__ = (
        CheckConstraint("estimated_value >= 0", name="ck_leads_estimated_value_non_negative"),
    )

    id: Mapped[str] = uuid_pk()

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="Website")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=LeadStatus.NEW, index=True)
    estimated_value: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    practice_area: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self) -> str:
        return f"<Lead {self.name} ({self.status})>"
