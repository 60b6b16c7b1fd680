"""
Tests for the audit trail: hash chaining, tamper detection, immutability,
secret redaction and the administrator's audit browser.
"""

import json

import pytest
from sqlalchemy import update

from lexledger.audit import AuditContext, changed_values, log_event, verify_audit_chain_integrity
from lexledger.models import AuditAction, AuditLog, AuditLogImmutableError
from tests.conftest import audit_rows

ACTOR = AuditContext(user_id="user-1", user_email="staff@example.com", ip_address="127.0.0.1")


async def write_entries(db, count=3):
    for i in range(count):
        await log_event(db, ACTOR, AuditAction.CREATE, "Client", f"client-{i}", new_values={"n": i})
    await db.commit()


# =============================================================================
# HASH CHAIN
# =============================================================================

class TestHashChain:
    async def test_entries_are_chained(self, db):
        await write_entries(db)
        rows = await audit_rows(db)
        assert [r.sequence for r in rows] == [1, 2, 3]
        assert rows[0].previous_hash is None
        assert rows[1].previous_hash == rows[0].entry_hash
        assert rows[2].previous_hash == rows[1].entry_hash
        assert all(r.verify_hash() for r in rows)

    async def test_untouched_chain_verifies(self, db):
        await write_entries(db)
        result = await verify_audit_chain_integrity(db)
        assert result == {"valid": True, "entries_checked": 3, "first_invalid_sequence": None, "error": None}

    async def test_empty_chain_is_valid(self, db):
        result = await verify_audit_chain_integrity(db)
        assert result["valid"] is True
        assert result["entries_checked"] == 0

    async def test_tampering_is_detected(self, db):
        """Edits made behind the application's back break the chain."""
        await write_entries(db)
        await db.execute(
            update(AuditLog.__table__)
            .where(AuditLog.__table__.c.sequence == 2)
            .values(details="nothing to see here")
        )
        await db.commit()

        result = await verify_audit_chain_integrity(db)
        assert result["valid"] is False
        assert result["first_invalid_sequence"] == 2
        assert result["entries_checked"] == 2

    async def test_broken_link_is_detected(self, db):
        await write_entries(db)
        await db.execute(
            update(AuditLog.__table__)
            .where(AuditLog.__table__.c.sequence == 3)
            .values(previous_hash="0" * 64)
        )
        await db.commit()

        result = await verify_audit_chain_integrity(db)
        assert result["valid"] is False
        assert result["first_invalid_sequence"] == 3

    def test_hash_is_deterministic(self):
        fields = {"sequence": 1, "action": "CREATE", "entity_type": "Client", "previous_hash": None}
        assert AuditLog.compute_hash(**fields) == AuditLog.compute_hash(**dict(reversed(fields.items())))
        assert AuditLog.compute_hash(**fields) != AuditLog.compute_hash(**{**fields, "sequence": 2})


# =============================================================================
# IMMUTABILITY
# =============================================================================

class TestImmutability:
    async def test_orm_update_is_refused(self, db):
        await write_entries(db, 1)
        [entry] = await audit_rows(db)
        entry.details = "rewritten"
        with pytest.raises(AuditLogImmutableError):
            await db.flush()
        await db.rollback()

    async def test_orm_delete_is_refused(self, db):
        await write_entries(db, 1)
        [entry] = await audit_rows(db)
        await db.delete(entry)
        with pytest.raises(AuditLogImmutableError):
            await db.flush()
        await db.rollback()


# =============================================================================
# ENTRY CONTENT
# =============================================================================

class TestEntryContent:
    async def test_secrets_are_redacted(self, db):
        await log_event(
            db, ACTOR, AuditAction.UPDATE, "User", "user-1",
            old_values={"password_hash": "$2b$12$old", "name": "A"},
            new_values={"password_hash": "$2b$12$new", "name": "B", "token": "abc"},
        )
        await db.commit()
        [row] = await audit_rows(db)
        assert row.old_data == {"name": "A"}
        assert row.new_data == {"name": "B"}

    async def test_user_agent_is_truncated(self, db):
        actor = AuditContext(user_id="user-1", user_agent="x" * 800)
        entry = await log_event(db, actor, AuditAction.VIEW, "Matter", "matter-1")
        await db.commit()
        assert len(entry.user_agent) == 500

    async def test_unknown_action_is_refused(self, db):
        with pytest.raises(ValueError):
            await log_event(db, ACTOR, "HACK", "Client")

    def test_changed_values_keeps_only_differences(self):
        before = {"name": "A", "city": None, "phone": "1"}
        after = {"name": "A", "city": "Istanbul", "phone": "2"}
        assert changed_values(before, after) == (
            {"city": None, "phone": "1"},
            {"city": "Istanbul", "phone": "2"},
        )

    async def test_request_context_is_recorded(self, auth_client, db):
        await auth_client.post(
            "/clients",
            json={"name": "Ayşe Yılmaz", "email": "ayse@example.com"},
            headers={"User-Agent": "pytest-agent"},
        )
        [row] = await audit_rows(db, AuditAction.CREATE, "Client")
        assert row.user_agent == "pytest-agent"
        assert row.ip_address is not None
        assert row.client_id is None


# =============================================================================
# AUDIT BROWSER
# =============================================================================

class TestAuditBrowser:
    async def test_filters_and_newest_first(self, admin_client, db):
        await write_entries(db)
        await log_event(db, ACTOR, AuditAction.DELETE, "Matter", "matter-1")
        await db.commit()

        body = (await admin_client.get("/settings/audit-logs")).json()
        assert body["total"] == 4
        assert body["page"] == 1
        assert body["page_size"] == 50
        assert [e["sequence"] for e in body["entries"]] == [4, 3, 2, 1]

        body = (await admin_client.get("/settings/audit-logs", params={"action": "DELETE"})).json()
        assert body["total"] == 1
        assert body["entries"][0]["entity_type"] == "Matter"

        body = (await admin_client.get("/settings/audit-logs", params={"user_email": "staff@"})).json()
        assert body["total"] == 4

    async def test_page_must_be_positive(self, admin_client):
        response = await admin_client.get("/settings/audit-logs", params={"page": 0})
        assert response.status_code == 422

    async def test_verify_endpoint(self, admin_client, db):
        await write_entries(db)
        body = (await admin_client.get("/settings/audit-logs/verify")).json()
        assert body["valid"] is True
        assert body["entries_checked"] == 3

    async def test_entity_trail(self, admin_client, auth_client, db):
        await write_entries(db)
        await log_event(
            db, ACTOR, AuditAction.UPDATE, "Client", "client-1",
            old_values={"n": 1}, new_values={"n": 5},
        )
        await db.commit()

        trail = (await admin_client.get("/settings/audit-logs/Client/client-1")).json()
        assert [e["action"] for e in trail] == ["CREATE", "UPDATE"]
        assert json.loads(trail[1]["new_values"]) == {"n": 5}

        response = await auth_client.get("/settings/audit-logs/Client/client-1")
        assert response.status_code == 403

    async def test_new_user_password_is_not_logged(self, admin_client, db):
        response = await admin_client.post("/settings/users", json={
            "email": "new.associate@example.com",
            "password": "StrongPass123",
            "name": "New Associate",
        })
        assert response.status_code == 201
        [row] = await audit_rows(db, AuditAction.CREATE, "User")
        assert "password_hash" not in row.new_data
        assert "StrongPass123" not in row.new_values
