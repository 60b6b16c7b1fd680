"""
Tests for the client portal: login, scoping of every read to the signed-in
client, the dashboard figures and messages sent from the portal.
"""

from datetime import date
from decimal import Decimal

from lexledger.auth import PORTAL_COOKIE_NAME
from lexledger.models import AuditAction, Client, ClientMessage, Invoice, Matter, Notification
from tests.conftest import TEST_PASSWORD, TEST_PASSWORD_HASH, audit_rows, csrf_data


async def other_client_with_matter(db):
    other = Client(name="Can Demir", email="can@example.com")
    db.add(other)
    await db.commit()
    matter = Matter(
        case_number="2024/500",
        name="Demir Holding",
        practice_area="Corporate",
        responsible_attorney="Pat Partner",
        client_id=other.id,
    )
    db.add(matter)
    await db.commit()
    return other, matter


# =============================================================================
# LOGIN
# =============================================================================

class TestPortalLogin:
    async def test_login_sets_portal_cookie(self, client, db, sample_client):
        client_id = sample_client.id
        response = await client.post(
            "/portal/login",
            data=csrf_data(client, {"email": "ayse@example.com", "password": TEST_PASSWORD}),
            follow_redirects=False,
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/portal/dashboard"
        assert PORTAL_COOKIE_NAME in response.cookies

        [row] = await audit_rows(db, AuditAction.CLIENT_LOGIN)
        assert row.client_id == client_id
        assert row.client_email == "ayse@example.com"
        assert row.user_id is None

    async def test_wrong_password(self, client, sample_client):
        response = await client.post(
            "/portal/login",
            data=csrf_data(client, {"email": "ayse@example.com", "password": "WrongPassword"}),
            follow_redirects=False,
        )
        assert response.status_code == 401

    async def test_client_without_portal_access(self, client, db):
        db.add(Client(name="No Portal", email="noportal@example.com", portal_password_hash=TEST_PASSWORD_HASH))
        await db.commit()
        response = await client.post(
            "/portal/login",
            data=csrf_data(client, {"email": "noportal@example.com", "password": TEST_PASSWORD}),
            follow_redirects=False,
        )
        assert response.status_code == 401

    async def test_revoked_access_ends_session(self, portal_client, db, sample_client):
        sample_client.portal_access = False
        await db.commit()
        response = await portal_client.get("/portal/dashboard")
        assert response.status_code == 401

    async def test_logout(self, portal_client, db):
        response = await portal_client.post("/portal/logout", follow_redirects=False)
        assert response.status_code == 303
        assert len(await audit_rows(db, AuditAction.CLIENT_LOGOUT)) == 1

    async def test_portal_login_is_rate_limited(self, client, sample_client):
        for _ in range(10):
            await client.post(
                "/portal/login",
                data=csrf_data(client, {"email": "ayse@example.com", "password": "WrongPassword"}),
                follow_redirects=False,
            )
        response = await client.post(
            "/portal/login",
            data=csrf_data(client, {"email": "ayse@example.com", "password": TEST_PASSWORD}),
            follow_redirects=False,
        )
        assert response.status_code == 429


# =============================================================================
# SCOPING
# =============================================================================

class TestScoping:
    async def test_only_own_matters_are_listed(self, portal_client, db, sample_matter):
        await other_client_with_matter(db)
        matters = (await portal_client.get("/portal/matters")).json()
        assert [m["case_number"] for m in matters] == ["2024/123"]

    async def test_other_clients_matter_is_not_found(self, portal_client, db, sample_matter):
        _, foreign = await other_client_with_matter(db)
        response = await portal_client.get(f"/portal/matters/{foreign.id}")
        assert response.status_code == 404

    async def test_own_matter_detail(self, portal_client, sample_matter):
        response = await portal_client.get(f"/portal/matters/{sample_matter.id}")
        assert response.status_code == 200
        body = response.json()
        assert body["documents"] == []
        assert body["events"] == []

    async def test_only_own_invoices(self, portal_client, db, sample_client):
        other, _ = await other_client_with_matter(db)
        db.add_all([
            Invoice(number="INV-0001", client_id=sample_client.id, amount=Decimal("100"), due_date=date.today()),
            Invoice(number="INV-0002", client_id=other.id, amount=Decimal("900"), due_date=date.today()),
        ])
        await db.commit()
        invoices = (await portal_client.get("/portal/invoices")).json()
        assert [i["number"] for i in invoices] == ["INV-0001"]


# =============================================================================
# DASHBOARD
# =============================================================================

class TestPortalDashboard:
    async def test_pending_amount_counts_sent_and_overdue(self, portal_client, db, sample_matter):
        client_id = sample_matter.client_id
        db.add_all([
            Invoice(number="INV-0001", client_id=client_id, amount=Decimal("100"), due_date=date.today(), status="Sent"),
            Invoice(number="INV-0002", client_id=client_id, amount=Decimal("250"), due_date=date.today(), status="Overdue"),
            Invoice(number="INV-0003", client_id=client_id, amount=Decimal("999"), due_date=date.today(), status="Paid"),
            Invoice(number="INV-0004", client_id=client_id, amount=Decimal("50"), due_date=date.today(), status="Draft"),
            Notification(client_id=client_id, title="New invoice", message="INV-0002"),
        ])
        await db.commit()

        body = (await portal_client.get("/portal/dashboard")).json()
        assert body["client"]["email"] == "ayse@example.com"
        assert body["active_matters"] == 1
        assert body["invoice_count"] == 4
        assert body["pending_amount"] == "350.00"
        assert body["unread_notifications"] == 1


# =============================================================================
# MESSAGES
# =============================================================================

class TestPortalMessages:
    async def test_send_message(self, portal_client, db, sample_matter):
        client_id = sample_matter.client_id
        response = await portal_client.post("/portal/messages", json={
            "subject": "Hearing date",
            "message": "When is the next hearing?",
            "matter_id": sample_matter.id,
        })
        assert response.status_code == 201
        assert response.json()["read"] is False

        [row] = await audit_rows(db, AuditAction.SEND_MESSAGE)
        assert row.client_id == client_id
        assert row.user_id is None

        messages = (await portal_client.get("/portal/messages")).json()
        assert [m["subject"] for m in messages] == ["Hearing date"]

    async def test_message_about_foreign_matter(self, portal_client, db, sample_client):
        _, foreign = await other_client_with_matter(db)
        response = await portal_client.post("/portal/messages", json={
            "subject": "Hello", "message": "Question", "matter_id": foreign.id,
        })
        assert response.status_code == 422

    async def test_blank_message(self, portal_client):
        response = await portal_client.post("/portal/messages", json={"subject": " ", "message": ""})
        assert response.status_code == 422
        assert set(response.json()["errors"]) == {"subject", "message"}

    async def test_staff_sees_portal_message_in_inbox(self, auth_client, db, sample_client):
        db.add(ClientMessage(client_id=sample_client.id, subject="Question", message="Hi"))
        await db.commit()

        inbox = (await auth_client.get("/communications")).json()
        assert inbox["unread"] == 1
        assert inbox["messages"][0]["subject"] == "Question"
