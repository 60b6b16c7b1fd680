"""Sanity check that the test infrastructure works."""

from sqlalchemy import text

from lexledger.config import settings


async def test_db_fixture_works(db):
    """Verify the test database session is functional."""
    result = await db.execute(text("SELECT 1"))
    assert result.scalar() == 1


async def test_foreign_keys_are_enforced(db):
    result = await db.execute(text("PRAGMA foreign_keys"))
    assert result.scalar() == 1


async def test_client_fixture_works(client):
    """Verify the test HTTP client can hit the health endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["app"] == settings.APP_NAME
    assert data["version"] == settings.APP_VERSION
