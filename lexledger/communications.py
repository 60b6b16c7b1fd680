"""
LexLedger - Client Messages, Staff E-mail and In-app Notifications
"""

import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, log_event, snapshot
from lexledger.config import Settings
from lexledger.errors import NotFound, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.client import Client
from lexledger.models.communication import ClientMessage, Notification, NotificationType
from lexledger.models.user import User
from lexledger.notifications import send_message_email

logger = logging.getLogger(__name__)


def _require_text(**fields) -> None:
    errors = {name: "This field is required" for name, value in fields.items() if not (value or "").strip()}
    if errors:
        raise ValidationFailed(errors)


# =============================================================================
# CLIENT MESSAGES
# =============================================================================

async def list_messages(
    db: AsyncSession,
    client_id: Optional[str] = None,
    unread_only: bool = False,
) -> List[ClientMessage]:
    q = repository.query(db, ClientMessage).filter_by(client_id=client_id)
    if unread_only:
        q = q.where(ClientMessage.read.is_(False))
    return await q.order_by(ClientMessage.created_at.desc()).all()


async def inbox(db: AsyncSession) -> dict:
    messages = await list_messages(db)
    return {
        "messages": messages,
        "unread": sum(1 for m in messages if not m.read),
    }


async def mark_message_read(db: AsyncSession, actor: AuditContext, message_id: str) -> ClientMessage:
    message = await repository.get_or_404(db, ClientMessage, message_id)
    if not message.read:
        message.read = True
        await repository.flush(db)
        await log_event(
            db, actor, AuditAction.UPDATE, "ClientMessage", message.id,
            old_values={"read": False},
            new_values={"read": True},
        )
        await db.commit()
    return message


async def reply_to_message(
    db: AsyncSession,
    config: Settings,
    actor: AuditContext,
    message_id: str,
    body: str,
    subject: Optional[str] = None,
) -> ClientMessage:
    """E-mail the client a reply and mark their message read."""
    _require_text(body=body)
    message = await repository.get_or_404(db, ClientMessage, message_id)
    client = await repository.get_or_404(db, Client, message.client_id)
    subject = (subject or "").strip() or f"Re: {message.subject}"

    await send_message_email(config, client.email, subject, body)

    message.read = True
    await repository.flush(db)
    await log_event(
        db, actor, AuditAction.REPLY_MESSAGE, "ClientMessage", message.id,
        new_values={"to": client.email, "subject": subject},
        details=f"Replied to {client.email}",
    )
    await db.commit()
    return message


async def delete_message(db: AsyncSession, actor: AuditContext, message_id: str) -> None:
    message = await repository.get_or_404(db, ClientMessage, message_id)
    old_values = snapshot(message, ["client_id", "matter_id", "subject"])
    await repository.delete(db, message)
    await log_event(db, actor, AuditAction.DELETE, "ClientMessage", message_id, old_values=old_values)
    await db.commit()


async def send_staff_email(
    db: AsyncSession,
    config: Settings,
    actor: AuditContext,
    to_email: str,
    subject: str,
    body: str,
    client_id: Optional[str] = None,
) -> str:
    """Ad-hoc e-mail from staff, optionally addressed to a client by id."""
    if client_id:
        client = await repository.get_or_404(db, Client, client_id)
        to_email = client.email
    _require_text(to_email=to_email, subject=subject, body=body)
    if "@" not in to_email:
        raise ValidationFailed.field("to_email", "A valid email address is required")

    message_id = await send_message_email(config, to_email, subject, body)
    await log_event(
        db, actor, AuditAction.SEND_EMAIL, "Client" if client_id else "Email", client_id,
        new_values={"to": to_email, "subject": subject},
        details=f"Email sent to {to_email}",
    )
    await db.commit()
    return message_id


# =============================================================================
# NOTIFICATIONS
# =============================================================================

async def create_notification(
    db: AsyncSession,
    actor: Optional[AuditContext],
    title: str,
    message: str,
    user_id: Optional[str] = None,
    client_id: Optional[str] = None,
    type: str = NotificationType.INFO,
    link: Optional[str] = None,
    commit: bool = True,
) -> Notification:
    """
    Address a notification to a staff user or a client.

    With ``commit=False`` the row and its audit entry are only staged, for
    callers that batch several writes into one transaction.
    """
    _require_text(title=title, message=message)
    if not user_id and not client_id:
        raise ValidationFailed.field("user_id", "A notification needs a user or a client")
    if type not in NotificationType.ALL:
        raise ValidationFailed.field("type", f"Type must be one of: {', '.join(NotificationType.ALL)}")
    if user_id and await repository.find(db, User, user_id) is None:
        raise ValidationFailed.field("user_id", "User does not exist")
    if client_id and await repository.find(db, Client, client_id) is None:
        raise ValidationFailed.field("client_id", "Client does not exist")

    notification = Notification(
        user_id=user_id,
        client_id=client_id,
        title=title.strip(),
        message=message,
        type=type,
        link=link,
    )
    await repository.create(db, notification)
    await log_event(
        db, actor, AuditAction.CREATE, "Notification", notification.id,
        new_values=snapshot(notification, ["user_id", "client_id", "title", "type"]),
    )
    if commit:
        await db.commit()
    return notification


async def list_notifications(db: AsyncSession, user_id: str, unread_only: bool = False) -> List[Notification]:
    q = repository.query(db, Notification).filter_by(user_id=user_id)
    if unread_only:
        q = q.where(Notification.read.is_(False))
    return await q.order_by(Notification.created_at.desc()).all()


async def mark_notification_read(db: AsyncSession, user_id: str, notification_id: str) -> Notification:
    """Only the addressee may mark a notification read; others get NotFound."""
    notification = await (
        repository.query(db, Notification)
        .filter_by(id=notification_id, user_id=user_id)
        .first()
    )
    if notification is None:
        raise NotFound("Notification", notification_id)
    notification.read = True
    await db.commit()
    return notification


async def mark_all_notifications_read(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0
