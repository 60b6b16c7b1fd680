"""
LexLedger - Document and Document Template Models
"""

import json
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Integer, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from lexledger.database import Base
from lexledger.models.base import uuid_pk
from lexledger.timestamps import now_utc


class Document(Base):
    """Uploaded file. The bytes live under UPLOAD_DIR, the row holds metadata."""

    __tablename__ = "documents"

    id: Mapped[str] = uuid_pk()

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)  # original filename
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)  # stored filename
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Versioning: every upload of the same name under the same matter shares a group
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    group_key: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    tags: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)  # comma separated
    text_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    matter_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("matters.id", ondelete="CASCADE"), nullable=True, index=True
    )
    uploaded_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc)

    @property
    def tag_list(self) -> list[str]:
        if not self.tags:
            return []
        return [t.strip() for t in self.tags.split(",") if t.strip()]

    def __repr__(self) -> str:
        return f"<Document {self.name} v{self.version}>"


class DocumentTemplate(Base):
    """Text template (petitions, engagement letters) rendered with variables."""

    __tablename__ = "document_templates"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    variables: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON list of names
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc)

    @property
    def variable_names(self) -> list[str]:
        if not self.variables:
            return []
        try:
            names = json.loads(self.variables)
        except json.JSONDecodeError:
            return []
        return [str(n) for n in names] if isinstance(names, list) else []

    def __repr__(self) -> str:
        return f"<DocumentTemplate {self.name}>"
