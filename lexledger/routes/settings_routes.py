"""
LexLedger - Settings Routes

Own profile, password and notifications for every staff member. Audit log
and user administration are restricted to administrators by the route
requirement table.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import accounts, communications
from lexledger.audit import (
    AuditContext,
    get_audit_context,
    get_entity_audit_trail,
    search_audit_logs,
    verify_audit_chain_integrity,
)
from lexledger.auth import change_password, create_user, require_user
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.models.user import User
from lexledger.schemas import (
    AuditLogOut,
    AuditPageOut,
    ChainVerificationOut,
    ChangePasswordRequest,
    Message,
    NotificationOut,
    ProfileUpdate,
    RoleUpdate,
    UserCreate,
    UserOut,
)

router = APIRouter(prefix="/settings", tags=["settings"], dependencies=[Depends(require_user)])


# =============================================================================
# PROFILE
# =============================================================================

@router.get("/profile", response_model=UserOut)
async def get_profile(user: User = Depends(require_user)):
    return user


@router.post("/profile", response_model=UserOut)
async def update_profile(
    body: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    user: User = Depends(require_user),
):
    return await accounts.update_profile(db, actor, user, body.model_dump(exclude_unset=True))


@router.post("/change-password", response_model=Message)
async def change_own_password(
    body: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    user: User = Depends(require_user),
):
    await change_password(db, actor, user, body.current_password, body.new_password, body.confirm_password)
    return {"detail": "Password changed"}


# =============================================================================
# NOTIFICATIONS
# =============================================================================

@router.get("/notifications", response_model=List[NotificationOut])
async def my_notifications(
    unread_only: bool = False,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_user),
):
    return await communications.list_notifications(db, user.id, unread_only=unread_only)


@router.post("/notifications/read-all")
async def read_all_notifications(db: AsyncSession = Depends(get_db), user: User = Depends(require_user)):
    return {"updated": await communications.mark_all_notifications_read(db, user.id)}


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
async def read_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_user),
):
    return await communications.mark_notification_read(db, user.id, notification_id)


# =============================================================================
# AUDIT LOG (admin)
# =============================================================================

@router.get("/audit-logs", response_model=AuditPageOut)
async def audit_logs(
    page: int = Query(1, ge=1),
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    user_email: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    page_size = config.AUDIT_LOG_PAGE_SIZE
    entries, total = await search_audit_logs(
        db,
        action=action,
        entity_type=entity_type,
        user_email=user_email,
        start=start,
        end=end,
        page=page,
        page_size=page_size,
    )
    return {"entries": entries, "total": total, "page": page, "page_size": page_size}


@router.get("/audit-logs/verify", response_model=ChainVerificationOut)
async def verify_audit_logs(db: AsyncSession = Depends(get_db)):
    return await verify_audit_chain_integrity(db)


@router.get("/audit-logs/{entity_type}/{entity_id}", response_model=List[AuditLogOut])
async def entity_audit_trail(entity_type: str, entity_id: str, db: AsyncSession = Depends(get_db)):
    """Every entry recorded for one record, oldest first."""
    return await get_entity_audit_trail(db, entity_type, entity_id)


# =============================================================================
# USERS (admin)
# =============================================================================

@router.get("/users", response_model=List[UserOut])
async def list_users(db: AsyncSession = Depends(get_db)):
    return await accounts.list_users(db)


@router.post("/users", response_model=UserOut, status_code=201)
async def add_user(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await create_user(
        db, actor, body.email, body.password, body.name,
        role=body.role,
        phone=body.phone,
        bar_number=body.bar_number,
    )


@router.post("/users/{user_id}/role", response_model=UserOut)
async def change_role(
    user_id: str,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    return await accounts.set_user_role(db, actor, user_id, body.role)


@router.post("/users/{user_id}/delete", response_model=Message)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await accounts.delete_user(db, actor, user_id)
    return {"detail": "User deleted"}
