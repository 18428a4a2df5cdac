"""Invoice totals, numbering and lifecycle."""

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from database.models import Invoice, InvoiceActivity
from services import invoices
from services.errors import InvalidOperation


def _invoice(**overrides):
    values = dict(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        invoice_number="INV-00001",
        status="draft",
        payment_terms="Net 30",
        due_date=None,
        sent_at=None,
        subtotal=Decimal("1000.00"),
        fees={},
        retainer_applied=Decimal("0.00"),
        total_due=Decimal("1000.00"),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestTotals:

    def test_line_amount_is_quantity_times_rate(self):
        items = invoices.normalize_line_items([
            {"description": "Plan examiner meeting", "quantity": 3, "rate": "450"},
            {"description": "Filing", "rate": 1200.5},
        ])
        assert items[0]["amount"] == "1350.00"
        assert items[1]["quantity"] == "1"
        assert items[1]["amount"] == "1200.50"
        assert invoices.compute_subtotal(items) == Decimal("2550.50")

    def test_client_supplied_amounts_are_ignored(self):
        items = invoices.normalize_line_items([{"quantity": 2, "rate": 10, "amount": 9999}])
        assert items[0]["amount"] == "20.00"

    def test_fees_are_added(self):
        assert invoices.compute_total_due(
            Decimal("100"), {"DOB fee": "25.50", "Mailing": 4.5}, Decimal("0")
        ) == Decimal("130.00")


class TestDates:

    def test_due_date_from_terms(self):
        assert invoices.due_date_for("Net 45", date(2026, 1, 10)) == date(2026, 2, 24)
        assert invoices.due_date_for("Due on receipt", date(2026, 1, 10)) == date(2026, 1, 10)

    def test_days_overdue(self):
        invoice = _invoice(due_date=date(2026, 1, 1))
        assert invoices.days_overdue(invoice, today=date(2026, 1, 31)) == 30
        assert invoices.days_overdue(invoice, today=date(2025, 12, 1)) == 0
        assert invoices.days_overdue(_invoice(), today=date(2026, 1, 31)) == 0


class TestCreateInvoice:

    def test_allocates_next_number_and_totals(self):
        company = SimpleNamespace(id=uuid.uuid4(), invoice_seq=6)
        db = FakeSession(results=[FakeResult([company])])

        invoice = asyncio.run(invoices.create_invoice(db, company.id, {
            "line_items": [{"description": "Filing", "quantity": 1, "rate": "3500"}],
            "fees": {"Expedite": "150"},
            "retainer_applied": "500",
        }))

        assert invoice.invoice_number == "INV-00007"
        assert company.invoice_seq == 7
        assert invoice.subtotal == Decimal("3500.00")
        assert invoice.total_due == Decimal("3150.00")
        assert invoice.status == "draft"
        assert [a.action for a in db.of_type(InvoiceActivity)] == ["created"]
        assert db.commits == 1

    def test_rejects_unknown_status(self):
        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.create_invoice(FakeSession(), uuid.uuid4(), {"status": "void"}))

    def test_commit_false_leaves_transaction_open(self):
        company = SimpleNamespace(id=uuid.uuid4(), invoice_seq=0)
        db = FakeSession(results=[FakeResult([company])])
        asyncio.run(invoices.create_invoice(db, company.id, {}, commit=False))
        assert db.commits == 0
        assert len(db.of_type(Invoice)) == 1


class TestLifecycle:

    def test_send_sets_status_and_due_date(self):
        invoice = _invoice(payment_terms="Net 15")
        db = FakeSession(results=[FakeResult([invoice])])

        asyncio.run(invoices.send_invoice(db, invoice.company_id, invoice.id, today=date(2026, 3, 1)))

        assert invoice.status == "sent"
        assert invoice.sent_at is not None
        assert invoice.due_date == date(2026, 3, 16)
        assert db.of_type(InvoiceActivity)[0].action == "sent"

    def test_cannot_send_paid_invoice(self):
        invoice = _invoice(status="paid")
        db = FakeSession(results=[FakeResult([invoice])])
        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.send_invoice(db, invoice.company_id, invoice.id))

    def test_record_payment(self):
        invoice = _invoice(status="sent")
        db = FakeSession(results=[FakeResult([invoice])])

        asyncio.run(invoices.record_payment(db, invoice.company_id, invoice.id, Decimal("1000"), method="check"))

        assert invoice.status == "paid"
        assert invoice.payment_amount == Decimal("1000.00")
        assert "via check" in db.of_type(InvoiceActivity)[0].details

    def test_cannot_pay_twice(self):
        invoice = _invoice(status="paid")
        db = FakeSession(results=[FakeResult([invoice])])
        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.record_payment(db, invoice.company_id, invoice.id, Decimal("1")))

    def test_cannot_delete_with_retainer_credit(self):
        invoice = _invoice(retainer_applied=Decimal("200"))
        db = FakeSession(results=[FakeResult([invoice])])
        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.delete_invoice(db, invoice.company_id, invoice.id))
        assert db.deleted == []


class TestInvoicePdf:

    def test_renders_a_pdf(self, company):
        from services.invoice_pdf import render_pdf

        invoice = _invoice(
            line_items=invoices.normalize_line_items([
                {"description": f"Service line {i}", "quantity": 1, "rate": 100} for i in range(60)
            ]),
            fees={"Filing fee": "25.00"},
            retainer_applied=Decimal("100.00"),
            special_instructions="Pay by ACH.",
        )
        client = SimpleNamespace(name="Harbor View", address="45 Water St", email="ap@harbor.local")

        pdf = render_pdf(invoice, company, client)
        assert pdf.startswith(b"%PDF")


class TestUpdateInvoice:

    def test_edits_lines_and_recomputes(self):
        invoice = _invoice(retainer_applied=Decimal("200.00"))
        db = FakeSession(results=[FakeResult([invoice])])

        asyncio.run(invoices.update_invoice(db, invoice.company_id, invoice.id, {
            "line_items": [{"description": "Filing", "quantity": 2, "rate": "600"}],
            "status": "ready_to_send",
        }))

        assert invoice.subtotal == Decimal("1200.00")
        assert invoice.total_due == Decimal("1000.00")
        assert invoice.status == "ready_to_send"
        assert db.commits == 1

    @pytest.mark.parametrize("status", ["paid", "sent", "overdue"])
    def test_lifecycle_statuses_are_not_patchable(self, status):
        invoice = _invoice()
        db = FakeSession(results=[FakeResult([invoice])])

        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.update_invoice(db, invoice.company_id, invoice.id, {"status": status}))
        assert invoice.status == "draft"
        assert db.commits == 0

    def test_paid_invoice_is_frozen(self):
        invoice = _invoice(status="paid")
        db = FakeSession(results=[FakeResult([invoice])])

        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.update_invoice(db, invoice.company_id, invoice.id, {"status": "draft"}))
        assert invoice.status == "paid"

    def test_retainer_credit_pins_the_client(self):
        client_id = uuid.uuid4()
        invoice = _invoice(client_id=client_id, retainer_applied=Decimal("200.00"))
        db = FakeSession(results=[FakeResult([invoice])])

        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.update_invoice(
                db, invoice.company_id, invoice.id, {"client_id": uuid.uuid4()}
            ))
        assert invoice.client_id == client_id

    def test_lines_cannot_shrink_below_retainer_credit(self):
        invoice = _invoice(retainer_applied=Decimal("800.00"))
        db = FakeSession(results=[FakeResult([invoice])])

        with pytest.raises(InvalidOperation):
            asyncio.run(invoices.update_invoice(db, invoice.company_id, invoice.id, {
                "line_items": [{"description": "Filing", "quantity": 1, "rate": "500"}],
            }))
        assert db.commits == 0


class TestOverdueSweep:

    def test_returns_the_updated_count(self):
        result = FakeResult()
        result.rowcount = 3
        db = FakeSession(results=[result])

        assert asyncio.run(invoices.mark_overdue(db, today=date(2026, 4, 1))) == 3
        assert db.commits == 1

    def test_only_sent_invoices_past_due(self):
        statements = []

        class RecordingSession(FakeSession):
            async def execute(self, statement):
                statements.append(statement)
                result = FakeResult()
                result.rowcount = 0
                return result

        asyncio.run(invoices.mark_overdue(RecordingSession(), today=date(2026, 4, 1)))

        sql = str(statements[0])
        assert "invoices.status" in sql
        assert "invoices.due_date <" in sql
