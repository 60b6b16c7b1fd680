"""
LexLedger - Test Configuration and Fixtures

Provides async database sessions, HTTP test clients (anonymous, staff per
role, portal client) and helper fixtures for all tests.
"""

import os
import tempfile
from contextlib import asynccontextmanager
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment BEFORE importing app code
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DEBUG"] = "true"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="lexledger-uploads-")
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASSWORD"] = ""
os.environ["ADMIN_PASSWORD"] = ""

from lexledger.database import Base, enable_sqlite_foreign_keys, get_db
from lexledger.main import app
from lexledger.models import AuditLog, Client, Matter, User, UserRole
from lexledger.auth import (
    PORTAL_COOKIE_NAME,
    SESSION_COOKIE_NAME,
    create_portal_token,
    create_session_token,
    hash_password,
)
from lexledger.csrf import CSRF_COOKIE_NAME, CSRF_FORM_FIELD, generate_csrf_token
from lexledger.rate_limit import rate_limit_store

TEST_PASSWORD = "TestPassword123"

# bcrypt at work factor 12 is slow; hash the shared test password once
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


# Test database engine (in-memory SQLite, one connection shared by all sessions)
test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
enable_sqlite_foreign_keys(test_engine)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest_asyncio.fixture
async def db():
    """Provide a test database session with fresh tables for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@asynccontextmanager
async def http_client(cookies=None):
    """An AsyncClient over the app with a CSRF cookie and header pre-set."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        csrf_token = generate_csrf_token()
        ac.cookies.set(CSRF_COOKIE_NAME, csrf_token)
        ac.headers["X-CSRF-Token"] = csrf_token
        # Kept on the client for form posts that send the token as a field
        ac._csrf_token = csrf_token
        for name, value in (cookies or {}).items():
            ac.cookies.set(name, value)
        yield ac


@pytest_asyncio.fixture
async def client(db):
    """Provide an anonymous async HTTP test client bound to the test database."""
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    rate_limit_store.reset()

    async with http_client() as ac:
        yield ac

    app.dependency_overrides.clear()
    rate_limit_store.reset()


# =============================================================================
# USERS
# =============================================================================

async def make_user(db, email, role=UserRole.ASSOCIATE, name=None):
    user = User(
        email=email,
        password_hash=TEST_PASSWORD_HASH,
        name=name or email.split("@")[0].title(),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db):
    return await make_user(db, "admin@example.com", UserRole.ADMIN, "Ada Admin")


@pytest_asyncio.fixture
async def partner_user(db):
    return await make_user(db, "partner@example.com", UserRole.PARTNER, "Pat Partner")


@pytest_asyncio.fixture
async def test_user(db):
    """An Associate, the least privileged staff role."""
    return await make_user(db, "testuser@example.com", UserRole.ASSOCIATE, "Test User")


def staff_cookies(user):
    return {SESSION_COOKIE_NAME: create_session_token(user)}


@pytest_asyncio.fixture
async def auth_client(client, test_user):
    """Provide an authenticated test client (logged in as test_user)."""
    client.cookies.set(SESSION_COOKIE_NAME, create_session_token(test_user))
    return client


@pytest_asyncio.fixture
async def admin_client(client, admin_user):
    """Separate client logged in as the administrator."""
    async with http_client(staff_cookies(admin_user)) as ac:
        yield ac


@pytest_asyncio.fixture
async def partner_client(client, partner_user):
    async with http_client(staff_cookies(partner_user)) as ac:
        yield ac


# =============================================================================
# DOMAIN DATA
# =============================================================================

@pytest_asyncio.fixture
async def sample_client(db):
    """A client with portal access enabled."""
    record = Client(
        name="Ayşe Yılmaz",
        email="ayse@example.com",
        portal_access=True,
        portal_password_hash=TEST_PASSWORD_HASH,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


@pytest_asyncio.fixture
async def sample_matter(db, sample_client):
    matter = Matter(
        case_number="2024/123",
        name="Yılmaz v. Demir",
        practice_area="Litigation",
        responsible_attorney="Pat Partner",
        billable_rate=Decimal("500"),
        client_id=sample_client.id,
    )
    db.add(matter)
    await db.commit()
    await db.refresh(matter)
    return matter


@pytest_asyncio.fixture
async def portal_client(client, sample_client):
    """Separate client logged in to the portal as sample_client."""
    async with http_client({PORTAL_COOKIE_NAME: create_portal_token(sample_client)}) as ac:
        yield ac


# =============================================================================
# HELPERS
# =============================================================================

def csrf_data(client, extra_data=None):
    """Build form data dict including the CSRF token for the given client."""
    data = {CSRF_FORM_FIELD: client._csrf_token}
    if extra_data:
        data.update(extra_data)
    return data


async def audit_rows(db, action=None, entity_type=None):
    """Audit entries in chain order, optionally filtered."""
    stmt = select(AuditLog).order_by(AuditLog.sequence)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars().all())
