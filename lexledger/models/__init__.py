# LexLedger - Models Package

from lexledger.models.base import new_id
from lexledger.models.user import User, UserRole
from lexledger.models.client import Client, ClientType, ClientStatus, Lead, LeadStatus
from lexledger.models.matter import Matter, MatterStatus, FeeStructure
from lexledger.models.task import Task, TaskStatus, TaskPriority, TaskTemplate
from lexledger.models.billing import (
    TimeEntry, Expense, Invoice, InvoiceStatus, SequenceCounter, time_entry_amount,
)
from lexledger.models.calendar import CalendarEvent, EventType
from lexledger.models.communication import Notification, NotificationType, ClientMessage
from lexledger.models.document import Document, DocumentTemplate
from lexledger.models.audit import AuditLog, AuditAction, AuditLogImmutableError
from lexledger.models.security import PasswordResetToken
from lexledger.models.reminder import Reminder, ReminderType

__all__ = [
    "new_id",
    "User",
    "UserRole",
    "Client",
    "ClientType",
    "ClientStatus",
    "Lead",
    "LeadStatus",
    "Matter",
    "MatterStatus",
    "FeeStructure",
    "Task",
    "TaskStatus",
    "TaskPriority",
    "TaskTemplate",
    "TimeEntry",
    "Expense",
    "Invoice",
    "InvoiceStatus",
    "SequenceCounter",
    "time_entry_amount",
    "CalendarEvent",
    "EventType",
    "Notification",
    "NotificationType",
    "ClientMessage",
    "Document",
    "DocumentTemplate",
    "AuditLog",
    "AuditAction",
    "AuditLogImmutableError",
    "PasswordResetToken",
    "Reminder",
    "ReminderType",
]
