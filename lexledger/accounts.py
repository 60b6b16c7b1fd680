"""
LexLedger - Staff Accounts

Own-profile editing and user administration. Creating users and changing
passwords live in ``lexledger.auth``.
"""

from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from lexledger import repository
from lexledger.audit import AuditContext, changed_values, log_event, snapshot
from lexledger.errors import Forbidden, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.user import User, UserRole

PROFILE_FIELDS = ("name", "phone", "bar_number", "bio")


async def update_profile(db: AsyncSession, actor: AuditContext, user: User, changes: dict) -> User:
    changes = {k: v for k, v in changes.items() if k in PROFILE_FIELDS}
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationFailed.field("name", "Name is required")

    before = snapshot(user)
    await repository.update(db, user, changes)
    old_values, new_values = changed_values(before, snapshot(user))
    await log_event(
        db, actor, AuditAction.UPDATE, "User", user.id, old_values, new_values,
        details="Profile updated",
    )
    await db.commit()
    return user


async def list_users(db: AsyncSession) -> List[User]:
    return await repository.query(db, User).order_by(User.name).all()


async def set_user_role(db: AsyncSession, actor: AuditContext, user_id: str, role: str) -> User:
    if role not in UserRole.ALL:
        raise ValidationFailed.field("role", f"Role must be one of: {', '.join(UserRole.ALL)}")
    user = await repository.get_or_404(db, User, user_id)
    old_role = user.role
    user.role = role
    await repository.flush(db)
    await log_event(
        db, actor, AuditAction.UPDATE, "User", user.id,
        old_values={"role": old_role},
        new_values={"role": role},
    )
    await db.commit()
    return user


async def delete_user(db: AsyncSession, actor: AuditContext, user_id: str) -> None:
    """Remove a staff account. Administrators cannot delete themselves."""
    if actor.user_id == user_id:
        raise Forbidden("You cannot delete your own account")
    user = await repository.get_or_404(db, User, user_id)
    old_values = snapshot(user)
    await repository.delete(db, user)
    await log_event(
        db, actor, AuditAction.DELETE, "User", user_id,
        old_values=old_values,
        details=f"User {old_values['email']} deleted",
    )
    await db.commit()
