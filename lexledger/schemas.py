"""
LexLedger - Request and Response Models

One explicit pydantic model per request body and per response shape.
Money is serialized as a string with two decimals ("750.00").
"""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer

from lexledger.billing import to_money

Money = Annotated[Decimal, PlainSerializer(lambda v: str(to_money(v)), return_type=str, when_used="json")]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Message(BaseModel):
    detail: str


# =============================================================================
# USERS AND AUTH
# =============================================================================

class UserOut(ORMModel):
    id: str
    email: str
    name: str
    role: str
    phone: Optional[str] = None
    bar_number: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    name: str = Field(min_length=1)
    role: str = "Associate"
    phone: Optional[str] = None
    bar_number: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    bar_number: Optional[str] = None
    bio: Optional[str] = None


class RoleUpdate(BaseModel):
    role: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: Optional[str] = None


# =============================================================================
# CLIENTS
# =============================================================================

class ClientBase(BaseModel):
    phone: Optional[str] = None
    mobile: Optional[str] = None
    company: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None
    portal_access: Optional[bool] = None


class ClientCreate(ClientBase):
    name: str
    email: EmailStr
    portal_password: Optional[str] = None


class ClientUpdate(ClientBase):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    portal_password: Optional[str] = None


class ClientOut(ORMModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    mobile: Optional[str] = None
    company: Optional[str] = None
    type: str
    status: str
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None
    notes: Optional[str] = None
    portal_access: bool
    created_at: datetime


# =============================================================================
# MATTERS
# =============================================================================

class MatterBase(BaseModel):
    description: Optional[str] = None
    status: Optional[str] = None
    fee_structure: Optional[str] = None
    billable_rate: Optional[Decimal] = None
    trust_balance: Optional[Decimal] = None
    open_date: Optional[datetime] = None


class MatterCreate(MatterBase):
    case_number: str
    name: str
    practice_area: str
    responsible_attorney: str
    client_id: str


class MatterUpdate(MatterBase):
    case_number: Optional[str] = None
    name: Optional[str] = None
    practice_area: Optional[str] = None
    responsible_attorney: Optional[str] = None
    client_id: Optional[str] = None


class MatterOut(ORMModel):
    id: str
    case_number: str
    name: str
    practice_area: str
    status: str
    fee_structure: str
    responsible_attorney: str
    description: Optional[str] = None
    billable_rate: Money
    trust_balance: Money
    client_id: str
    open_date: datetime


class MatterListItemOut(ORMModel):
    matter: MatterOut
    client_name: str
    task_count: int
    document_count: int


# =============================================================================
# TASKS
# =============================================================================

class TaskBase(BaseModel):
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    matter_id: Optional[str] = None
    assigned_to_id: Optional[str] = None


class TaskCreate(TaskBase):
    title: str


class TaskUpdate(TaskBase):
    title: Optional[str] = None


class TaskStatusUpdate(BaseModel):
    task_id: str
    status: str


class TaskOut(ORMModel):
    id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    priority: str
    status: str
    matter_id: Optional[str] = None
    assigned_to_id: Optional[str] = None
    template_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime


class BoardCardOut(ORMModel):
    task: TaskOut
    matter_name: Optional[str] = None
    assignee_name: Optional[str] = None


class BoardOut(BaseModel):
    columns: Dict[str, List[BoardCardOut]]
    total: int


class TaskTemplateItem(BaseModel):
    title: str
    priority: Optional[str] = None
    description: Optional[str] = None
    due_in_days: Optional[int] = Field(default=None, ge=0)


class TaskTemplateCreate(BaseModel):
    name: str
    category: Optional[str] = None
    items: List[TaskTemplateItem]


class TaskTemplateOut(ORMModel):
    id: str
    name: str
    category: Optional[str] = None
    items: List[Dict[str, Any]]
    is_active: bool


class TemplateApply(BaseModel):
    matter_id: Optional[str] = None
    assigned_to_id: Optional[str] = None


# =============================================================================
# TIME AND EXPENSES
# =============================================================================

class TimeEntryCreate(BaseModel):
    description: str
    duration: int = Field(ge=0)
    rate: Decimal = Decimal(0)
    date: Optional[date_type] = None
    activity_type: Optional[str] = None
    matter_id: Optional[str] = None


class TimeEntryUpdate(BaseModel):
    description: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    rate: Optional[Decimal] = None
    date: Optional[date_type] = None
    activity_type: Optional[str] = None
    matter_id: Optional[str] = None
    is_billed: Optional[bool] = None


class MarkBilledRequest(BaseModel):
    entry_ids: List[str]


class MarkBilledOut(BaseModel):
    updated: int


class TimeEntryOut(ORMModel):
    id: str
    description: str
    duration: int
    hours: Decimal
    rate: Money
    amount: Money
    date: date_type
    activity_type: Optional[str] = None
    is_billed: bool
    matter_id: Optional[str] = None
    invoice_id: Optional[str] = None


class ExpenseCreate(BaseModel):
    description: str
    amount: Decimal
    category: str = "General"
    date: Optional[date_type] = None
    matter_id: Optional[str] = None


class ExpenseOut(ORMModel):
    id: str
    description: str
    amount: Money
    category: str
    date: date_type
    is_billed: bool
    matter_id: Optional[str] = None
    invoice_id: Optional[str] = None


class TimeTotalsOut(BaseModel):
    total_billed: Money
    total_unbilled: Money
    total_minutes: int
    total_expenses: Money


class TimeOverviewOut(BaseModel):
    entries: List[TimeEntryOut]
    expenses: List[ExpenseOut]
    totals: TimeTotalsOut


# =============================================================================
# CRM
# =============================================================================

class LeadBase(BaseModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    source: Optional[str] = None
    estimated_value: Optional[Decimal] = None
    practice_area: Optional[str] = None
    notes: Optional[str] = None


class LeadCreate(LeadBase):
    name: str


class LeadUpdate(LeadBase):
    name: Optional[str] = None
    status: Optional[str] = None


class LeadOut(ORMModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    source: str
    status: str
    estimated_value: Money
    practice_area: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class LeadStatsOut(BaseModel):
    total: int
    new: int
    total_estimated_value: Money
    converted_value: Money


class LeadListOut(BaseModel):
    leads: List[LeadOut]
    stats: LeadStatsOut


# =============================================================================
# CALENDAR
# =============================================================================

class EventCreate(BaseModel):
    title: str
    date: datetime
    type: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    matter_id: Optional[str] = None


class EventUpdate(BaseModel):
    title: Optional[str] = None
    date: Optional[datetime] = None
    type: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    matter_id: Optional[str] = None


class EventOut(ORMModel):
    id: str
    title: str
    date: datetime
    type: str
    location: Optional[str] = None
    description: Optional[str] = None
    matter_id: Optional[str] = None


class CalendarItemOut(ORMModel):
    id: str
    title: str
    date: datetime
    type: str
    matter_id: Optional[str] = None
    location: Optional[str] = None
    is_task: bool


class MonthViewOut(BaseModel):
    year: int
    month: int
    items: List[CalendarItemOut]


# =============================================================================
# BILLING
# =============================================================================

class InvoiceCreate(BaseModel):
    client_id: str
    amount: Decimal
    due_date: date_type
    issue_date: Optional[date_type] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class InvoiceFromUnbilled(BaseModel):
    client_id: str
    due_date: date_type
    matter_id: Optional[str] = None
    notes: Optional[str] = None


class InvoiceStatusUpdate(BaseModel):
    status: str


class InvoiceOut(ORMModel):
    id: str
    number: str
    amount: Money
    issue_date: date_type
    due_date: date_type
    status: str
    notes: Optional[str] = None
    client_id: str


class InvoiceListItemOut(InvoiceOut):
    client: ClientOut


class StatusTotalOut(BaseModel):
    count: int
    total: Money


class InvoiceListOut(BaseModel):
    invoices: List[InvoiceListItemOut]
    summary: Dict[str, StatusTotalOut]


class NextNumberOut(BaseModel):
    number: str


class InvoiceLineOut(ORMModel):
    description: str
    quantity: Decimal
    unit_price: Money
    amount: Money


class InvoiceDetailOut(BaseModel):
    invoice: InvoiceOut
    client: ClientOut
    lines: List[InvoiceLineOut]
    itemized: bool
    subtotal: Money
    vat_percent: int
    vat_amount: Money
    total: Money


class UnbilledOut(BaseModel):
    time_entries: List[TimeEntryOut]
    expenses: List[ExpenseOut]


# =============================================================================
# DOCUMENTS
# =============================================================================

class DocumentOut(ORMModel):
    id: str
    name: str
    file_name: str
    file_size: int
    mime_type: Optional[str] = None
    description: Optional[str] = None
    version: int
    group_key: Optional[str] = None
    tag_list: List[str]
    matter_id: Optional[str] = None
    uploaded_by_id: Optional[str] = None
    created_at: datetime


class DocumentDetailOut(DocumentOut):
    versions: List[DocumentOut] = []


class DocumentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None
    matter_id: Optional[str] = None


class DocumentTemplateCreate(BaseModel):
    name: str
    content: str
    category: Optional[str] = None
    variables: Optional[List[str]] = None


class DocumentTemplateUpdate(BaseModel):
    name: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    variables: Optional[List[str]] = None
    is_active: Optional[bool] = None


class DocumentTemplateOut(ORMModel):
    id: str
    name: str
    category: Optional[str] = None
    content: str
    variable_names: List[str]
    is_active: bool


class RenderRequest(BaseModel):
    variables: Dict[str, Any] = {}


class RenderOut(BaseModel):
    content: str


# =============================================================================
# COMMUNICATIONS
# =============================================================================

class ClientMessageOut(ORMModel):
    id: str
    client_id: str
    matter_id: Optional[str] = None
    subject: str
    message: str
    read: bool
    created_at: datetime


class InboxOut(BaseModel):
    messages: List[ClientMessageOut]
    unread: int


class ReplyRequest(BaseModel):
    body: str
    subject: Optional[str] = None


class SendEmailRequest(BaseModel):
    subject: str
    body: str
    to_email: Optional[str] = None
    client_id: Optional[str] = None


class SendEmailOut(BaseModel):
    message_id: str


class NotificationCreate(BaseModel):
    title: str
    message: str
    user_id: Optional[str] = None
    client_id: Optional[str] = None
    type: str = "info"
    link: Optional[str] = None


class NotificationOut(ORMModel):
    id: str
    user_id: Optional[str] = None
    client_id: Optional[str] = None
    title: str
    message: str
    type: str
    link: Optional[str] = None
    read: bool
    created_at: datetime


class PortalMessageCreate(BaseModel):
    subject: str
    message: str
    matter_id: Optional[str] = None


# =============================================================================
# AUDIT
# =============================================================================

class AuditLogOut(ORMModel):
    sequence: int
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    client_id: Optional[str] = None
    client_email: Optional[str] = None
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    old_values: Optional[str] = None
    new_values: Optional[str] = None
    details: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime
    entry_hash: str


class AuditPageOut(BaseModel):
    entries: List[AuditLogOut]
    total: int
    page: int
    page_size: int


class ChainVerificationOut(BaseModel):
    valid: bool
    entries_checked: int
    first_invalid_sequence: Optional[int] = None
    error: Optional[str] = None


# =============================================================================
# REMINDERS
# =============================================================================

class ReminderCreate(BaseModel):
    trigger_at: datetime
    entity_type: str
    entity_id: str
    type: str = "notification"
    message: Optional[str] = None
    user_id: Optional[str] = None


class ReminderOut(ORMModel):
    id: str
    type: str
    trigger_at: datetime
    sent: bool
    sent_at: Optional[datetime] = None
    entity_type: str
    entity_id: str
    message: Optional[str] = None
    user_id: Optional[str] = None


class DispatchOut(BaseModel):
    sent: int
    failed: int


# =============================================================================
# DASHBOARDS
# =============================================================================

class BillingTotalsOut(BaseModel):
    total_billed: Money
    total_unbilled: Money
    overdue_total: Money


class DashboardOut(BaseModel):
    total_clients: int
    active_matters: int
    pending_tasks: int
    billing: BillingTotalsOut
    upcoming_events: List[EventOut]
    recent_tasks: List[TaskOut]
    recent_matters: List[MatterOut]
    matters_by_status: Dict[str, int]


class PortalDashboardOut(BaseModel):
    client: ClientOut
    active_matters: int
    invoice_count: int
    pending_amount: Money
    unread_notifications: int


class PortalMatterOut(MatterOut):
    documents: List[DocumentOut]
    events: List[EventOut]


# =============================================================================
# DETAIL VIEWS
# =============================================================================

class ClientDetailOut(ClientOut):
    matters: List[MatterOut]
    invoices: List[InvoiceOut]


class MatterDetailOut(MatterOut):
    client: ClientOut
    tasks: List[TaskOut]
    time_entries: List[TimeEntryOut]
    expenses: List[ExpenseOut]
    events: List[EventOut]
    documents: List[DocumentOut]
