"""
Tests for billing: invoice numbering, VAT totals, invoicing unbilled work,
status changes, printing and the billing dashboard totals.
"""

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select

from lexledger.billing import compute_invoice_totals, format_invoice_number, parse_invoice_number
from lexledger.models import AuditAction, Expense, TimeEntry
from lexledger.timestamps import format_local, today_utc
from tests.conftest import audit_rows


def due_date():
    return (today_utc() + timedelta(days=30)).isoformat()


async def create_invoice(client, client_id, amount="1000", **extra):
    response = await client.post("/billing/invoices", json={
        "client_id": client_id,
        "amount": amount,
        "due_date": due_date(),
        **extra,
    })
    assert response.status_code == 201
    return response.json()


async def log_work(client, matter_id):
    """90 minutes at the matter rate (500) plus a 250 court fee: 1000.00."""
    entry = await client.post("/time/entries", json={
        "description": "Hearing preparation", "duration": 90, "matter_id": matter_id,
    })
    expense = await client.post("/time/expenses", json={
        "description": "Court fee", "amount": "250", "matter_id": matter_id,
    })
    return entry.json(), expense.json()


# =============================================================================
# INVOICE NUMBERS
# =============================================================================

class TestInvoiceNumbers:
    def test_format_and_parse(self):
        assert format_invoice_number(7) == "INV-0007"
        assert format_invoice_number(12345) == "INV-12345"
        assert parse_invoice_number("INV-0042") == 42
        assert parse_invoice_number("2024-001") is None

    async def test_numbers_are_sequential(self, auth_client, sample_client):
        numbers = [(await create_invoice(auth_client, sample_client.id))["number"] for _ in range(3)]
        assert numbers == ["INV-0001", "INV-0002", "INV-0003"]

    async def test_next_number_preview(self, auth_client, sample_client):
        assert (await auth_client.get("/billing/invoices/next-number")).json() == {"number": "INV-0001"}
        await create_invoice(auth_client, sample_client.id)
        assert (await auth_client.get("/billing/invoices/next-number")).json() == {"number": "INV-0002"}
        # Previewing does not reserve the number
        assert (await auth_client.get("/billing/invoices/next-number")).json() == {"number": "INV-0002"}

    async def test_deleted_numbers_are_not_reused(self, auth_client, partner_client, sample_client):
        await create_invoice(auth_client, sample_client.id)
        second = await create_invoice(auth_client, sample_client.id)
        response = await partner_client.post(f"/billing/invoices/{second['id']}/delete")
        assert response.status_code == 200

        third = await create_invoice(auth_client, sample_client.id)
        assert third["number"] == "INV-0003"

    async def test_negative_amount_is_rejected(self, auth_client, sample_client):
        response = await auth_client.post("/billing/invoices", json={
            "client_id": sample_client.id, "amount": "-5", "due_date": due_date(),
        })
        assert response.status_code == 422
        assert "amount" in response.json()["errors"]

    async def test_fractional_cent_amount_is_rejected(self, auth_client, sample_client):
        response = await auth_client.post("/billing/invoices", json={
            "client_id": sample_client.id, "amount": "10.001", "due_date": due_date(),
        })
        assert response.status_code == 422
        assert "amount" in response.json()["errors"]


# =============================================================================
# TOTALS
# =============================================================================

class TestInvoiceTotals:
    def test_vat_is_eighteen_percent(self):
        totals = compute_invoice_totals(Decimal("1000"))
        assert totals["subtotal"] == Decimal("1000.00")
        assert totals["vat"] == Decimal("180.00")
        assert totals["total"] == Decimal("1180.00")

    def test_totals_round_half_up(self):
        totals = compute_invoice_totals(Decimal("0.25"))
        assert totals["vat"] == Decimal("0.05")
        assert totals["total"] == Decimal("0.30")

    async def test_invoice_detail_shows_vat(self, auth_client, sample_client):
        invoice = await create_invoice(auth_client, sample_client.id)
        response = await auth_client.get(f"/billing/invoices/{invoice['id']}")
        assert response.status_code == 200
        body = response.json()
        assert body["itemized"] is False
        assert body["subtotal"] == "1000.00"
        assert body["vat_percent"] == 18
        assert body["vat_amount"] == "180.00"
        assert body["total"] == "1180.00"
        assert body["client"]["name"] == "Ayşe Yılmaz"


# =============================================================================
# INVOICING UNBILLED WORK
# =============================================================================

class TestFromUnbilled:
    async def test_bills_time_and_expenses(self, auth_client, db, sample_matter):
        client_id = sample_matter.client_id
        entry, expense = await log_work(auth_client, sample_matter.id)
        assert entry["amount"] == "750.00"

        response = await auth_client.post("/billing/invoices/from-unbilled", json={
            "client_id": client_id, "due_date": due_date(),
        })
        assert response.status_code == 201
        invoice = response.json()
        assert invoice["amount"] == "1000.00"
        assert invoice["status"] == "Draft"

        billed_entry = await db.scalar(
            select(TimeEntry).where(TimeEntry.id == entry["id"]).execution_options(populate_existing=True)
        )
        billed_expense = await db.scalar(
            select(Expense).where(Expense.id == expense["id"]).execution_options(populate_existing=True)
        )
        assert billed_entry.is_billed and billed_entry.invoice_id == invoice["id"]
        assert billed_expense.is_billed and billed_expense.invoice_id == invoice["id"]

        detail = (await auth_client.get(f"/billing/invoices/{invoice['id']}")).json()
        assert detail["itemized"] is True
        assert len(detail["lines"]) == 2
        assert detail["total"] == "1180.00"

        unbilled = (await auth_client.get("/billing/unbilled")).json()
        assert unbilled == {"time_entries": [], "expenses": []}

    async def test_nothing_to_bill(self, auth_client, sample_client):
        response = await auth_client.post("/billing/invoices/from-unbilled", json={
            "client_id": sample_client.id, "due_date": due_date(),
        })
        assert response.status_code == 422

    async def test_deleting_invoice_unbills_items(self, auth_client, partner_client, db, sample_matter):
        entry, expense = await log_work(auth_client, sample_matter.id)
        invoice = (await auth_client.post("/billing/invoices/from-unbilled", json={
            "client_id": sample_matter.client_id, "due_date": due_date(),
        })).json()

        response = await partner_client.post(f"/billing/invoices/{invoice['id']}/delete")
        assert response.status_code == 200

        assert await db.scalar(select(TimeEntry.is_billed).where(TimeEntry.id == entry["id"])) is False
        assert await db.scalar(select(TimeEntry.invoice_id).where(TimeEntry.id == entry["id"])) is None
        assert await db.scalar(select(Expense.is_billed).where(Expense.id == expense["id"])) is False

    async def test_associate_cannot_delete_invoice(self, auth_client, sample_client):
        invoice = await create_invoice(auth_client, sample_client.id)
        response = await auth_client.post(f"/billing/invoices/{invoice['id']}/delete")
        assert response.status_code == 403

    async def test_mark_time_entries_billed(self, auth_client, sample_matter):
        entry, _ = await log_work(auth_client, sample_matter.id)
        response = await auth_client.post("/time/entries/mark-billed", json={"entry_ids": [entry["id"], entry["id"]]})
        assert response.json() == {"updated": 1}

        # Already billed entries are not counted again
        response = await auth_client.post("/time/entries/mark-billed", json={"entry_ids": [entry["id"]]})
        assert response.json() == {"updated": 0}

        totals = (await auth_client.get("/time")).json()["totals"]
        assert totals["total_billed"] == "750.00"
        assert totals["total_unbilled"] == "0.00"


# =============================================================================
# STATUS, PRINTING, DASHBOARD
# =============================================================================

class TestInvoiceLifecycle:
    async def test_status_change_is_audited(self, auth_client, db, sample_client):
        invoice = await create_invoice(auth_client, sample_client.id)
        response = await auth_client.post(f"/billing/invoices/{invoice['id']}/status", json={"status": "Sent"})
        assert response.status_code == 200
        assert response.json()["status"] == "Sent"

        row = (await audit_rows(db, AuditAction.UPDATE, "Invoice"))[-1]
        assert row.old_data == {"status": "Draft"}
        assert row.new_data == {"status": "Sent"}

    async def test_unknown_status_is_rejected(self, auth_client, sample_client):
        invoice = await create_invoice(auth_client, sample_client.id)
        response = await auth_client.post(f"/billing/invoices/{invoice['id']}/status", json={"status": "Lost"})
        assert response.status_code == 422

    async def test_print_pdf(self, auth_client, db, sample_client):
        invoice = await create_invoice(auth_client, sample_client.id)
        response = await auth_client.get(f"/billing/invoices/{invoice['id']}/print", params={"format": "pdf"})
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert len(await audit_rows(db, AuditAction.PRINT, "Invoice")) == 1

    async def test_print_html(self, auth_client, sample_client):
        invoice = await create_invoice(auth_client, sample_client.id)
        response = await auth_client.get(f"/billing/invoices/{invoice['id']}/print")
        assert response.status_code == 200
        assert "Invoice INV-0001" in response.text
        assert "₺1,180.00" in response.text
        assert "Printed " in response.text

    def test_print_time_uses_firm_time_zone(self):
        assert format_local(datetime(2024, 1, 15, 9, 30), "Europe/Istanbul") == "15.01.2024 12:30"

    async def test_invoice_list_summary(self, auth_client, sample_client):
        await create_invoice(auth_client, sample_client.id, amount="100")
        await create_invoice(auth_client, sample_client.id, amount="200", status="Paid")

        body = (await auth_client.get("/billing/invoices")).json()
        assert len(body["invoices"]) == 2
        assert body["invoices"][0]["client"]["email"] == "ayse@example.com"
        assert body["summary"]["Paid"] == {"count": 1, "total": "200.00"}
        assert body["summary"]["Draft"] == {"count": 1, "total": "100.00"}

    async def test_dashboard_billing_totals(self, auth_client, sample_matter):
        entry, _ = await log_work(auth_client, sample_matter.id)
        await create_invoice(auth_client, sample_matter.client_id, amount="300", status="Overdue")

        billing = (await auth_client.get("/dashboard")).json()["billing"]
        assert billing["total_unbilled"] == "750.00"
        assert billing["total_billed"] == "0.00"
        assert billing["overdue_total"] == "300.00"
