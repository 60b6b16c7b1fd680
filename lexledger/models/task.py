"""
LexLedger - Task and Task Template Models
"""

import json
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from lexledger.database import Base
from lexledger.models.base import uuid_pk
from lexledger.timestamps import now_utc


class TaskStatus:
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    REVIEW = "Review"
    DONE = "Done"

    ALL = (TODO, IN_PROGRESS, REVIEW, DONE)


class TaskPriority:
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    ALL = (HIGH, MEDIUM, LOW)


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = uuid_pk()

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    reminder_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=TaskPriority.MEDIUM)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TaskStatus.TODO, index=True)

    matter_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("matters.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assigned_to_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    template_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("task_templates.id", ondelete="SET NULL"), nullable=True
    )

    # Set when the task moves into Done
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc, onupdate=now_utc)

    def __repr__(self) -> str:
        return f"<Task {self.title} [{self.status}]>"


class TaskTemplate(Base):
    """
    Reusable checklist of tasks.

    ``definition`` is a JSON list of items:
    ``{"title": str, "priority": str?, "description": str?, "due_in_days": int?}``
    """

    __tablename__ = "task_templates"

    id: Mapped[str] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    definition: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_utc)

    @property
    def items(self) -> list:
        try:
            value = json.loads(self.definition or "[]")
        except json.JSONDecodeError:
            return []
        return value if isinstance(value, list) else []

    def __repr__(self) -> str:
        return f"<TaskTemplate {self.name}>"
