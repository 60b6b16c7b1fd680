"""
LexLedger - Reminders

Reminders are rows with a trigger time. Nothing in the web process fires
them on its own: an external job (cron, a systemd timer) either reads
``/reminders/due`` and reports back with ``/reminders/{id}/sent``, or calls
``/reminders/dispatch`` to have them delivered here.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import SYSTEM, AuditContext, log_event, snapshot
from lexledger.communications import create_notification
from lexledger.config import Settings
from lexledger.errors import ExternalServiceError, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.communication import NotificationType
from lexledger.models.reminder import Reminder, ReminderType
from lexledger.models.task import Task
from lexledger.models.user import User
from lexledger.notifications import send_task_reminder_email
from lexledger.timestamps import now_utc

logger = logging.getLogger(__name__)


async def create_reminder(
    db: AsyncSession,
    actor: AuditContext,
    trigger_at: datetime,
    entity_type: str,
    entity_id: str,
    type: str = ReminderType.NOTIFICATION,
    message: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Reminder:
    errors = {}
    if type not in ReminderType.ALL:
        errors["type"] = f"Type must be one of: {', '.join(ReminderType.ALL)}"
    if not entity_type:
        errors["entity_type"] = "This field is required"
    if not entity_id:
        errors["entity_id"] = "This field is required"
    if errors:
        raise ValidationFailed(errors)

    reminder = Reminder(
        type=type,
        trigger_at=trigger_at,
        entity_type=entity_type,
        entity_id=entity_id,
        message=message,
        user_id=user_id,
    )
    await repository.create(db, reminder)
    await log_event(
        db, actor, AuditAction.CREATE, "Reminder", reminder.id,
        new_values=snapshot(reminder, ["type", "trigger_at", "entity_type", "entity_id"]),
    )
    await db.commit()
    return reminder


async def list_due(db: AsyncSession, at: Optional[datetime] = None) -> List[Reminder]:
    """Unsent reminders whose trigger time has passed."""
    return await (
        repository.query(db, Reminder)
        .where(Reminder.sent.is_(False), Reminder.trigger_at <= (at or now_utc()))
        .order_by(Reminder.trigger_at)
        .all()
    )


async def mark_sent(db: AsyncSession, actor: AuditContext, reminder_id: str) -> Reminder:
    reminder = await repository.get_or_404(db, Reminder, reminder_id)
    if not reminder.sent:
        reminder.sent = True
        reminder.sent_at = now_utc()
        await repository.flush(db)
        await log_event(
            db, actor, AuditAction.UPDATE, "Reminder", reminder.id,
            old_values={"sent": False},
            new_values={"sent": True},
        )
        await db.commit()
    return reminder


async def _deliver(db: AsyncSession, config: Settings, reminder: Reminder) -> bool:
    user = await repository.find(db, User, reminder.user_id)
    if user is None:
        logger.info("Reminder %s has no recipient, marking it sent", reminder.id)
        return True

    if reminder.type == ReminderType.EMAIL and reminder.entity_type == "Task":
        task = await repository.find(db, Task, reminder.entity_id)
        if task is not None:
            await send_task_reminder_email(config, user, task)
            return True

    if reminder.type == ReminderType.SMS:
        logger.warning("SMS reminders are not configured; delivering reminder %s in-app", reminder.id)

    await create_notification(
        db, SYSTEM,
        title="Reminder",
        message=reminder.message or f"{reminder.entity_type} reminder",
        user_id=user.id,
        type=NotificationType.WARNING,
        commit=False,
    )
    return True


async def dispatch_due_reminders(db: AsyncSession, config: Settings) -> dict:
    """
    Deliver every due reminder.

    Each reminder is committed on its own; one that fails to send stays
    unsent and is retried on the next run.
    """
    sent = 0
    failed = 0
    due_ids = [reminder.id for reminder in await list_due(db)]
    for reminder_id in due_ids:
        reminder = await repository.find(db, Reminder, reminder_id)
        if reminder is None or reminder.sent:
            continue
        try:
            await _deliver(db, config, reminder)
        except ExternalServiceError as exc:
            logger.error("Reminder %s could not be delivered: %s", reminder_id, exc.message)
            await db.rollback()
            failed += 1
            continue
        reminder.sent = True
        reminder.sent_at = now_utc()
        await db.commit()
        sent += 1

    logger.info("Reminder dispatch: %d sent, %d failed", sent, failed)
    return {"sent": sent, "failed": failed}
