"""
LexLedger - Password Reset Token Model
"""

from datetime import datetime
from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from lexledger.database import Base
from lexledger.models.base import uuid_pk
from lexledger.timestamps import now_utc


class PasswordResetToken(Base):
    """Single-use password reset token. Not linked to users by foreign key."""

    __tablename__ = "password_reset_tokens"

    id: Mapped[str] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_utc)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def is_usable(self, at: datetime) -> bool:
        return not self.used and self.expires_at > at

    def __repr__(self) -> str:
        return f"<PasswordResetToken {self.email} used={self.used}>"
