"""
LexLedger - Authentication Logic

Password hashing (bcrypt), signed session cookies for staff and for portal
clients, and the password-reset token lifecycle.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import bcrypt
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import Depends, Request

from lexledger.audit import AuditContext, log_event
from lexledger.config import Settings, settings
from lexledger.database import get_db
from lexledger.errors import ExternalServiceError, Forbidden, InvalidOrExpiredToken, Unauthorized, ValidationFailed
from lexledger.models.audit import AuditAction
from lexledger.models.client import Client
from lexledger.models.security import PasswordResetToken
from lexledger.models.user import User, UserRole
from lexledger.notifications import send_password_reset_email
from lexledger.repository import create
from lexledger.timestamps import now_utc

logger = logging.getLogger(__name__)

# Session cookies
SESSION_COOKIE_NAME = "lexledger_session"
PORTAL_COOKIE_NAME = "lexledger_portal"

# Separate salts: a staff cookie never verifies as a portal cookie and vice versa
staff_serializer = URLSafeTimedSerializer(settings.SECRET_KEY, salt="staff-session")
portal_serializer = URLSafeTimedSerializer(settings.SECRET_KEY, salt="client-portal")

# 64 random bytes before base64 encoding
RESET_TOKEN_BYTES = 64

MIN_PASSWORD_LENGTH = 8
BCRYPT_MAX_BYTES = 72


# =============================================================================
# PASSWORD UTILITIES
# =============================================================================

def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with bcrypt (work factor 12 unless configured higher)."""
    rounds = max(rounds or settings.BCRYPT_ROUNDS, 12)
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash. Any error counts as a mismatch."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except Exception:
        return False


def validate_new_password(password: str, confirm: Optional[str] = None, field: str = "new_password") -> None:
    """Raise ValidationFailed if the password cannot be used."""
    errors = {}
    if len(password or "") < MIN_PASSWORD_LENGTH:
        errors[field] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    elif len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        errors[field] = f"Password must be at most {BCRYPT_MAX_BYTES} bytes"
    if confirm is not None and confirm != password:
        errors["confirm_password"] = "Passwords do not match"
    if errors:
        raise ValidationFailed(errors)


# =============================================================================
# SESSION MANAGEMENT
# =============================================================================

@dataclass(frozen=True)
class Principal:
    """Identity carried by a verified session cookie."""

    kind: str  # "staff" or "client"
    id: str
    email: str
    role: Optional[str] = None

    @property
    def is_client(self) -> bool:
        return self.kind == "client"


def create_session_token(user: User, remember_me: bool = False) -> str:
    """Create a signed staff session token carrying the user's claims."""
    return staff_serializer.dumps({
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "remember": bool(remember_me),
    })


def verify_session_token(token: str, max_age: Optional[int] = None) -> Optional[dict]:
    """
    Verify and decode a staff session token.

    Args:
        token: The session token to verify
        max_age: Maximum age in seconds (defaults to the configured session
            lifetime, or the remember-me lifetime for remembered sessions)

    Returns:
        The decoded data if valid, None if invalid/expired
    """
    long_age = settings.REMEMBER_ME_EXPIRE_DAYS * 24 * 3600
    short_age = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    try:
        data, issued_at = staff_serializer.loads(
            token, max_age=max_age or max(long_age, short_age), return_timestamp=True
        )
    except (BadSignature, SignatureExpired):
        return None

    if max_age is None and not data.get("remember"):
        age = (now_utc() - issued_at.replace(tzinfo=None)).total_seconds()
        if age > short_age:
            return None
    return data


def create_portal_token(client: Client) -> str:
    """Create a signed portal session token for a client."""
    return portal_serializer.dumps({"client_id": client.id, "email": client.email})


def verify_portal_token(token: str, max_age: Optional[int] = None) -> Optional[dict]:
    if max_age is None:
        max_age = settings.PORTAL_SESSION_EXPIRE_MINUTES * 60
    try:
        return portal_serializer.loads(token, max_age=max_age)
    except (BadSignature, SignatureExpired):
        return None


def staff_principal_from_token(token: Optional[str]) -> Optional[Principal]:
    data = verify_session_token(token) if token else None
    if not data or not data.get("user_id"):
        return None
    return Principal(kind="staff", id=data["user_id"], email=data.get("email", ""), role=data.get("role"))


def client_principal_from_token(token: Optional[str]) -> Optional[Principal]:
    data = verify_portal_token(token) if token else None
    if not data or not data.get("client_id"):
        return None
    return Principal(kind="client", id=data["client_id"], email=data.get("email", ""))


# =============================================================================
# USER OPERATIONS
# =============================================================================

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Get a user by email address."""
    result = await db.execute(
        select(User)
        .where(User.email == email.lower().strip())
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_client_by_email(db: AsyncSession, email: str) -> Optional[Client]:
    result = await db.execute(
        select(Client)
        .where(Client.email == email.lower().strip())
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    actor: Optional[AuditContext],
    email: str,
    password: str,
    name: str,
    role: str = UserRole.ASSOCIATE,
    phone: Optional[str] = None,
    bar_number: Optional[str] = None,
) -> User:
    """Create a staff account."""
    if role not in UserRole.ALL:
        raise ValidationFailed.field("role", f"Role must be one of: {', '.join(UserRole.ALL)}")
    validate_new_password(password, field="password")

    user = User(
        email=email.lower().strip(),
        password_hash=hash_password(password),
        name=name.strip(),
        role=role,
        phone=phone.strip() if phone else None,
        bar_number=bar_number.strip() if bar_number else None,
    )
    await create(db, user, "A user with this email already exists", "email")
    await log_event(
        db, actor, AuditAction.CREATE, "User", user.id,
        new_values={"email": user.email, "name": user.name, "role": user.role},
    )
    await db.commit()
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """
    Authenticate a user by email and password.

    Returns the user if authentication succeeds, None otherwise.
    """
    user = await get_user_by_email(db, email)
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    if not user.is_active:
        return None
    return user


async def record_login(db: AsyncSession, actor: AuditContext, user: User) -> None:
    """Stamp the login time and write the LOGIN entry."""
    user.last_login_at = now_utc()
    await log_event(db, actor.as_user(user), AuditAction.LOGIN, "User", user.id, details="User logged in")
    await db.commit()


async def authenticate_client(db: AsyncSession, email: str, password: str) -> Optional[Client]:
    """Portal login: requires portal access and a stored portal password."""
    client = await get_client_by_email(db, email)
    if not client or not client.can_use_portal:
        return None
    if not verify_password(password, client.portal_password_hash):
        return None
    return client


async def change_password(
    db: AsyncSession,
    actor: AuditContext,
    user: User,
    current_password: str,
    new_password: str,
    confirm_password: Optional[str] = None,
) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationFailed.field("current_password", "Current password is incorrect")
    validate_new_password(new_password, confirm_password)

    user.password_hash = hash_password(new_password)
    await log_event(db, actor, AuditAction.CHANGE_PASSWORD, "User", user.id, details="Password changed")
    await db.commit()


async def ensure_admin(db: AsyncSession, config: Settings) -> Optional[User]:
    """Create the configured administrator account if it does not exist yet."""
    if not config.ADMIN_PASSWORD:
        return None
    existing = await get_user_by_email(db, config.ADMIN_EMAIL)
    if existing:
        return existing

    logger.info("Seeding administrator account %s", config.ADMIN_EMAIL)
    return await create_user(
        db,
        None,
        email=config.ADMIN_EMAIL,
        password=config.ADMIN_PASSWORD,
        name=config.ADMIN_NAME,
        role=UserRole.ADMIN,
    )


# =============================================================================
# PASSWORD RESET
# =============================================================================

def generate_reset_token() -> str:
    return secrets.token_urlsafe(RESET_TOKEN_BYTES)


async def request_password_reset(db: AsyncSession, config: Settings, email: str) -> Optional[PasswordResetToken]:
    """
    Issue a reset token and email it, if an account exists for ``email``.

    Callers report success either way; the return value is only for tests
    and internal use.
    """
    user = await get_user_by_email(db, email)
    if user is None or not user.is_active:
        logger.info("Password reset requested for unknown account")
        return None

    created_at = now_utc()
    reset = PasswordResetToken(
        email=user.email,
        token=generate_reset_token(),
        created_at=created_at,
        expires_at=created_at + timedelta(hours=config.PASSWORD_RESET_EXPIRE_HOURS),
    )
    await create(db, reset)
    await db.commit()

    try:
        await send_password_reset_email(config, user, reset.token)
    except ExternalServiceError:
        logger.exception("Could not deliver password reset email")
    return reset


async def reset_password(
    db: AsyncSession,
    actor: AuditContext,
    token: str,
    new_password: str,
    confirm_password: Optional[str] = None,
) -> User:
    """
    Set a new password using a reset token.

    The token is consumed with a guarded UPDATE (``used`` still false), so two
    concurrent requests with the same token cannot both succeed.

    Raises:
        InvalidOrExpiredToken: no unused, unexpired token matches
        ValidationFailed: the new password is unacceptable
    """
    validate_new_password(new_password, confirm_password)

    now = now_utc()
    result = await db.execute(
        select(PasswordResetToken)
        .where(
            PasswordResetToken.token == token,
            PasswordResetToken.used.is_(False),
            PasswordResetToken.expires_at > now,
        )
        .execution_options(populate_existing=True)
    )
    reset = result.scalar_one_or_none()
    if reset is None:
        raise InvalidOrExpiredToken()

    user = await get_user_by_email(db, reset.email)
    if user is None:
        raise InvalidOrExpiredToken()

    consumed = await db.execute(
        update(PasswordResetToken)
        .where(PasswordResetToken.id == reset.id, PasswordResetToken.used.is_(False))
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    if consumed.rowcount != 1:
        await db.rollback()
        raise InvalidOrExpiredToken()

    user.password_hash = hash_password(new_password)
    await log_event(
        db, actor.as_user(user), AuditAction.CHANGE_PASSWORD, "User", user.id,
        details="Password reset via emailed token",
    )
    await db.commit()
    return user


# =============================================================================
# REQUEST AUTHENTICATION
# =============================================================================

def get_principal(request: Request) -> Optional[Principal]:
    """The principal resolved by the authorization middleware, if any."""
    return getattr(request.state, "principal", None)


async def get_current_user(request: Request, db: AsyncSession) -> Optional[User]:
    """
    Get the currently logged-in staff user.

    Returns None if not authenticated or the account is gone/disabled.
    """
    principal = get_principal(request)
    if principal is None or principal.is_client:
        principal = staff_principal_from_token(request.cookies.get(SESSION_COOKIE_NAME))
    if principal is None:
        return None

    user = await db.get(User, principal.id, populate_existing=True)
    if not user or not user.is_active:
        return None
    return user


async def require_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    """
    Dependency for staff routes.

    The middleware checked the role claim in the cookie. The route's
    requirement is checked again here against the role stored on the
    account, so a demoted user loses access on their next request.
    """
    user = await get_current_user(request, db)
    if not user:
        raise Unauthorized()

    principal = Principal(kind="staff", id=user.id, email=user.email, role=user.role)
    requirement = getattr(request.state, "requirement", None)
    if requirement is not None and not requirement.allows(principal):
        raise Forbidden()
    request.state.principal = principal
    return user


async def require_client(request: Request, db: AsyncSession = Depends(get_db)) -> Client:
    """Dependency for portal routes."""
    principal = get_principal(request)
    if principal is None or not principal.is_client:
        principal = client_principal_from_token(request.cookies.get(PORTAL_COOKIE_NAME))
    if principal is None:
        raise Unauthorized()

    client = await db.get(Client, principal.id, populate_existing=True)
    if not client or not client.can_use_portal:
        raise Unauthorized()
    return client
