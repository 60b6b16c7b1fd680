"""
LexLedger - Authentication Routes
"""

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from lexledger.audit import AuditContext, get_audit_context, log_event
from lexledger.auth import (
    SESSION_COOKIE_NAME,
    authenticate_user,
    create_session_token,
    get_principal,
    record_login,
    request_password_reset,
    reset_password,
)
from lexledger.config import Settings, get_settings
from lexledger.database import get_db
from lexledger.errors import Unauthorized
from lexledger.models.audit import AuditAction
from lexledger.schemas import Message

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _safe_next(next_url: str) -> str:
    # Only same-site relative paths
    if not next_url.startswith("/") or next_url.startswith("//"):
        return "/dashboard"
    return next_url


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================

@router.post("/login")
async def login_submit(
    email: str = Form(...),
    password: str = Form(...),
    remember_me: bool = Form(False),
    next: str = Form("/dashboard"),
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
    config: Settings = Depends(get_settings),
):
    """Process login form submission."""
    user = await authenticate_user(db, email, password)
    if not user:
        logger.info("Failed login attempt for %s", email.lower().strip())
        raise Unauthorized("Invalid email or password")

    await record_login(db, actor, user)

    token = create_session_token(user, remember_me=remember_me)
    if remember_me:
        max_age = config.REMEMBER_ME_EXPIRE_DAYS * 24 * 3600
    else:
        max_age = config.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    response = RedirectResponse(url=_safe_next(next), status_code=303)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        samesite="lax",
        secure=not config.DEBUG,
    )
    return response


@router.post("/logout")
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    """Log the user out by clearing the session cookie."""
    principal = get_principal(request)
    if principal is not None and not principal.is_client:
        await log_event(db, actor, AuditAction.LOGOUT, "User", principal.id, details="User logged out")
        await db.commit()

    response = RedirectResponse(url="/login", status_code=303)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


# =============================================================================
# PASSWORD RESET
# =============================================================================

@router.post("/forgot-password", response_model=Message)
async def forgot_password(
    email: str = Form(...),
    db: AsyncSession = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Always answers the same way, whether or not the account exists."""
    await request_password_reset(db, config, email)
    return {"detail": "If an account exists for this email, a reset link has been sent."}


@router.post("/reset-password", response_model=Message)
async def reset_password_submit(
    token: str = Form(...),
    new_password: str = Form(...),
    confirm_password: str = Form(None),
    db: AsyncSession = Depends(get_db),
    actor: AuditContext = Depends(get_audit_context),
):
    await reset_password(db, actor, token, new_password, confirm_password)
    return {"detail": "Your password has been reset. You can now log in."}
