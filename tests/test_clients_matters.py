"""
Tests for clients and matters: validation, unique emails, detail views,
audit entries and the delete rules between records.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from lexledger.models import (
    AuditAction,
    CalendarEvent,
    Client,
    ClientMessage,
    Expense,
    Invoice,
    Matter,
    Notification,
    Task,
    TimeEntry,
)
from lexledger.timestamps import now_utc
from tests.conftest import audit_rows


async def count(db, model, *criteria):
    stmt = select(func.count()).select_from(model)
    if criteria:
        stmt = stmt.where(*criteria)
    return await db.scalar(stmt)


# =============================================================================
# CLIENTS
# =============================================================================

class TestClients:
    async def test_create_client(self, auth_client, db):
        response = await auth_client.post("/clients", json={
            "name": "Ayşe Yılmaz",
            "email": "Ayse@Example.com",
            "phone": "+90 555 000 0000",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["email"] == "ayse@example.com"
        assert body["status"] == "Active"
        assert body["type"] == "Individual"

        rows = await audit_rows(db, AuditAction.CREATE, "Client")
        assert len(rows) == 1
        assert rows[0].entity_id == body["id"]
        assert rows[0].user_email == "testuser@example.com"

    async def test_duplicate_email_is_a_conflict(self, auth_client, sample_client):
        response = await auth_client.post("/clients", json={"name": "Someone Else", "email": "ayse@example.com"})
        assert response.status_code == 409
        assert "email" in response.json()["errors"]

    async def test_blank_name_is_rejected(self, auth_client):
        response = await auth_client.post("/clients", json={"name": "  ", "email": "blank@example.com"})
        assert response.status_code == 422
        assert "name" in response.json()["errors"]

    async def test_portal_password_never_appears_in_audit(self, auth_client, db):
        response = await auth_client.post("/clients", json={
            "name": "Portal User",
            "email": "portal@example.com",
            "portal_access": True,
            "portal_password": "PortalPass123",
        })
        assert response.status_code == 201
        rows = await audit_rows(db, AuditAction.CREATE, "Client")
        assert "portal_password_hash" not in rows[0].new_values
        assert "PortalPass123" not in rows[0].new_values

    async def test_edit_client_records_old_and_new_values(self, auth_client, db, sample_client):
        response = await auth_client.post(f"/clients/{sample_client.id}/edit", json={"city": "Istanbul"})
        assert response.status_code == 200
        assert response.json()["city"] == "Istanbul"

        row = (await audit_rows(db, AuditAction.UPDATE, "Client"))[-1]
        assert row.old_data["city"] is None
        assert row.new_data["city"] == "Istanbul"

    async def test_search_clients(self, auth_client, sample_client):
        response = await auth_client.get("/clients", params={"search": "yılmaz"})
        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["Ayşe Yılmaz"]

    async def test_client_details_include_matters(self, auth_client, sample_matter):
        response = await auth_client.get(f"/clients/{sample_matter.client_id}")
        assert response.status_code == 200
        body = response.json()
        assert [m["case_number"] for m in body["matters"]] == ["2024/123"]
        assert body["invoices"] == []


# =============================================================================
# MATTERS
# =============================================================================

class TestMatters:
    async def test_create_matter_requires_existing_client(self, auth_client):
        response = await auth_client.post("/matters", json={
            "case_number": "2024/999",
            "name": "Ghost",
            "practice_area": "Corporate",
            "responsible_attorney": "Pat Partner",
            "client_id": "no-such-client",
        })
        assert response.status_code == 422
        assert "client_id" in response.json()["errors"]

    async def test_negative_billable_rate_is_rejected(self, auth_client, sample_client):
        response = await auth_client.post("/matters", json={
            "case_number": "2024/124",
            "name": "Negative",
            "practice_area": "Corporate",
            "responsible_attorney": "Pat Partner",
            "client_id": sample_client.id,
            "billable_rate": "-1",
        })
        assert response.status_code == 422

    @pytest.mark.parametrize("field", ["billable_rate", "status", "name"])
    async def test_null_for_required_column_is_a_field_error(self, auth_client, sample_matter, field):
        response = await auth_client.post(f"/matters/{sample_matter.id}/edit", json={field: None})
        assert response.status_code == 422
        assert field in response.json()["errors"]

        body = (await auth_client.get(f"/matters/{sample_matter.id}")).json()
        assert body["billable_rate"] == "500.00"
        assert body["status"] == "Open"

    async def test_matter_details_are_logged_as_view(self, auth_client, db, sample_matter):
        matter_id = sample_matter.id
        response = await auth_client.get(f"/matters/{matter_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["client"]["email"] == "ayse@example.com"
        assert body["billable_rate"] == "500.00"

        rows = await audit_rows(db, AuditAction.VIEW, "Matter")
        assert [r.entity_id for r in rows] == [matter_id]

    async def test_matter_list_has_counts(self, auth_client, db, sample_matter):
        db.add(Task(title="Draft petition", matter_id=sample_matter.id))
        await db.commit()

        response = await auth_client.get("/matters")
        assert response.status_code == 200
        [row] = response.json()
        assert row["task_count"] == 1
        assert row["document_count"] == 0
        assert row["client_name"] == "Ayşe Yılmaz"


# =============================================================================
# BILLABLE AMOUNT SCENARIO
# =============================================================================

class TestBillableScenario:
    async def test_ninety_minutes_at_500_is_750(self, auth_client):
        """Client, matter at rate 500, 90 minutes logged -> 750.00."""
        response = await auth_client.post("/clients", json={"name": "Ayşe Yılmaz", "email": "ayse@example.com"})
        client_id = response.json()["id"]

        response = await auth_client.post("/matters", json={
            "case_number": "2024/123",
            "name": "Yılmaz v. Demir",
            "practice_area": "Litigation",
            "responsible_attorney": "Pat Partner",
            "client_id": client_id,
            "billable_rate": "500",
        })
        assert response.status_code == 201
        matter_id = response.json()["id"]

        response = await auth_client.post("/time/entries", json={
            "description": "Hearing preparation",
            "duration": 90,
            "matter_id": matter_id,
        })
        assert response.status_code == 201
        entry = response.json()
        assert entry["rate"] == "500.00"
        assert entry["amount"] == "750.00"

        overview = (await auth_client.get("/time", params={"matter_id": matter_id})).json()
        assert overview["totals"]["total_unbilled"] == "750.00"
        assert overview["totals"]["total_minutes"] == 90

    async def test_amount_reads_back_as_created(self, auth_client):
        response = await auth_client.post("/time/entries", json={
            "description": "Phone call", "duration": 7, "rate": "99.99",
        })
        assert response.status_code == 201
        created = response.json()

        [listed] = (await auth_client.get("/time")).json()["entries"]
        assert (listed["rate"], listed["amount"]) == (created["rate"], created["amount"]) == ("99.99", "11.67")

    @pytest.mark.parametrize("path,body,field", [
        ("/time/entries", {"description": "Call", "duration": 60, "rate": "100.005"}, "rate"),
        ("/time/expenses", {"description": "Copies", "amount": "12.345"}, "amount"),
        ("/crm/leads", {"name": "Fractional", "estimated_value": "0.001"}, "estimated_value"),
    ])
    async def test_fractional_cents_are_rejected(self, auth_client, path, body, field):
        response = await auth_client.post(path, json=body)
        assert response.status_code == 422
        assert field in response.json()["errors"]
        assert (await auth_client.get("/time")).json()["entries"] == []

    def test_amount_is_derived_from_duration_and_rate(self):
        entry = TimeEntry(description="x", duration=45, rate=Decimal("200"))
        assert entry.amount == Decimal("150.00")
        entry.duration = 60
        assert entry.amount == Decimal("200.00")


# =============================================================================
# DELETE RULES
# =============================================================================

class TestDeleteRules:
    async def test_deleting_client_cascades(self, partner_client, db, sample_client, sample_matter):
        """Matters, invoices, messages and notifications go with the client."""
        client_id = sample_client.id
        matter_id = sample_matter.id
        db.add_all([
            Invoice(number="INV-0001", client_id=client_id, amount=Decimal("100"), due_date=date.today()),
            ClientMessage(client_id=client_id, subject="Hello", message="Question"),
            Notification(client_id=client_id, title="Invoice", message="New invoice"),
        ])
        await db.commit()

        response = await partner_client.post(f"/clients/{client_id}/delete")
        assert response.status_code == 200

        assert await count(db, Client, Client.id == client_id) == 0
        assert await count(db, Matter, Matter.id == matter_id) == 0
        assert await count(db, Invoice) == 0
        assert await count(db, ClientMessage) == 0
        assert await count(db, Notification) == 0
        assert len(await audit_rows(db, AuditAction.DELETE, "Client")) == 1

    async def test_deleting_matter_keeps_work_records(self, partner_client, db, sample_matter):
        """Tasks, time, expenses and events stay with their matter reference cleared."""
        matter_id = sample_matter.id
        task = Task(title="Draft petition", matter_id=matter_id)
        entry = TimeEntry(description="Research", duration=30, rate=Decimal("500"), matter_id=matter_id)
        expense = Expense(description="Court fee", amount=Decimal("250"), matter_id=matter_id)
        event = CalendarEvent(title="Hearing", date=now_utc() + timedelta(days=3), matter_id=matter_id)
        db.add_all([task, entry, expense, event])
        await db.commit()
        ids = (task.id, entry.id, expense.id, event.id)

        response = await partner_client.post(f"/matters/{matter_id}/delete")
        assert response.status_code == 200

        assert await db.scalar(select(Task.matter_id).where(Task.id == ids[0])) is None
        assert await db.scalar(select(TimeEntry.matter_id).where(TimeEntry.id == ids[1])) is None
        assert await db.scalar(select(Expense.matter_id).where(Expense.id == ids[2])) is None
        assert await db.scalar(select(CalendarEvent.matter_id).where(CalendarEvent.id == ids[3])) is None
        assert await count(db, Task) == 1
        assert await count(db, TimeEntry) == 1

    async def test_associate_cannot_delete_matter(self, auth_client, sample_matter):
        response = await auth_client.post(f"/matters/{sample_matter.id}/delete")
        assert response.status_code == 403
