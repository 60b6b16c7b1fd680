"""
LexLedger - Communication Routes

Staff side of client messaging, ad-hoc e-mail and notifications.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import communications
from lexledger.audit import AuditContext, get_audit_context
from lexledger.auth import require_user
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.schemas import (
    ClientMessageOut,
    InboxOut,
    Message,
    NotificationCreate,
    NotificationOut,
    ReplyRequest,
    SendEmailOut,
    SendEmailRequest,
)

router = APIRouter(prefix="/communications", tags=["communications"], dependencies=[Depends(require_user)])


@router.get("", response_model=InboxOut)
async def inbox(db: AsyncSession = Depends(get_db)):
    return await communications.inbox(db)


@router.get("/messages", response_model=List[ClientMessageOut])
async def list_messages(
    client_id: Optional[str] = None,
    unread_only: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await communications.list_messages(db, client_id=client_id, unread_only=unread_only)


@router.post("/send-email", response_model=SendEmailOut)
async def send_email(
    body: SendEmailRequest,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    message_id = await communications.send_staff_email(
        db, config, actor,
        to_email=body.to_email,
        subject=body.subject,
        body=body.body,
        client_id=body.client_id,
    )
    return {"message_id": message_id}


@router.post("/messages/{message_id}/read", response_model=ClientMessageOut)
async def mark_read(
    message_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await communications.mark_message_read(db, actor, message_id)


@router.post("/messages/{message_id}/reply", response_model=ClientMessageOut)
async def reply(
    message_id: str,
    body: ReplyRequest,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    return await communications.reply_to_message(db, config, actor, message_id, body.body, subject=body.subject)


@router.post("/messages/{message_id}/delete", response_model=Message)
async def delete_message(
    message_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await communications.delete_message(db, actor, message_id)
    return {"detail": "Message deleted"}


@router.post("/notifications", response_model=NotificationOut, status_code=201)
async def create_notification(
    body: NotificationCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await communications.create_notification(
        db, actor, body.title, body.message,
        user_id=body.user_id,
        client_id=body.client_id,
        type=body.type,
        link=body.link,
    )
