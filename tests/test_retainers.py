"""Retainer ledger math, ledger operations and the retainer-credit side of invoices."""

import asyncio
import uuid
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from database.models import ClientRetainer, InvoiceActivity, RetainerTransaction
from services import retainers
from services.errors import InsufficientBalance, InvalidOperation
from services.invoices import compute_total_due
from services.retainers import apply_entry, replay_ledger, status_after


class TestApplyEntry:

    def test_deposit_and_draw_down(self):
        assert apply_entry(Decimal("100"), "deposit", Decimal("50")) == Decimal("150.00")
        assert apply_entry(Decimal("100"), "draw_down", Decimal("40")) == Decimal("60.00")

    def test_draw_down_to_exactly_zero(self):
        assert apply_entry(Decimal("75.50"), "draw_down", Decimal("75.50")) == Decimal("0.00")

    def test_overdraw_raises_insufficient_balance(self):
        with pytest.raises(InsufficientBalance) as exc:
            apply_entry(Decimal("100"), "draw_down", Decimal("100.01"))
        assert exc.value.balance == "$100.00"
        assert exc.value.requested == "$100.01"

    def test_negative_adjustment_cannot_go_below_zero(self):
        assert apply_entry(Decimal("10"), "adjustment", Decimal("-10")) == Decimal("0.00")
        with pytest.raises(InsufficientBalance):
            apply_entry(Decimal("10"), "adjustment", Decimal("-10.01"))

    def test_adjustment_must_be_non_zero(self):
        with pytest.raises(InvalidOperation):
            apply_entry(Decimal("10"), "adjustment", Decimal("0"))

    @pytest.mark.parametrize("tx_type", ["deposit", "draw_down", "refund"])
    def test_amount_must_be_positive(self, tx_type):
        with pytest.raises(InvalidOperation):
            apply_entry(Decimal("10"), tx_type, Decimal("-1"))

    def test_unknown_type(self):
        with pytest.raises(InvalidOperation):
            apply_entry(Decimal("10"), "bonus", Decimal("1"))

    def test_amounts_are_rounded_to_cents(self):
        assert apply_entry(Decimal("0"), "deposit", Decimal("10.005")) == Decimal("10.01")


class TestStatusAfter:

    def test_depleted_at_zero(self):
        assert status_after("draw_down", Decimal("0"), "active") == "depleted"

    def test_full_refund_marks_refunded(self):
        assert status_after("refund", Decimal("0"), "active") == "refunded"

    def test_deposit_reactivates(self):
        assert status_after("deposit", Decimal("10"), "depleted") == "active"

    def test_partial_refund_keeps_active(self):
        assert status_after("refund", Decimal("10"), "active") == "active"


class TestReplay:

    def test_balance_equals_replayed_ledger(self):
        entries = [
            ("deposit", Decimal("2500")),
            ("draw_down", Decimal("1200")),
            ("adjustment", Decimal("-50")),
            ("deposit", Decimal("500")),
            ("refund", Decimal("250")),
        ]
        assert replay_ledger(entries) == Decimal("1500.00")

    def test_replay_rejects_an_overdraw(self):
        with pytest.raises(InsufficientBalance):
            replay_ledger([("deposit", Decimal("10")), ("draw_down", Decimal("11"))])


class TestRetainerCredit:

    def test_total_due_nets_out_credit(self):
        assert compute_total_due(Decimal("1000"), {"Filing fee": "100"}, Decimal("300")) == Decimal("800.00")

    def test_total_due_never_negative(self):
        assert compute_total_due(Decimal("100"), None, Decimal("250")) == Decimal("0.00")


def _retainer(**overrides):
    values = dict(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        client_id=uuid.uuid4(),
        current_balance=Decimal("5000.00"),
        status="active",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _invoice_for(retainer, **overrides):
    values = dict(
        id=uuid.uuid4(),
        company_id=retainer.company_id,
        client_id=retainer.client_id,
        invoice_number="INV-00007",
        status="sent",
        subtotal=Decimal("1000.00"),
        fees={"Filing fee": "100.00"},
        retainer_applied=Decimal("0.00"),
        retainer_id=None,
        total_due=Decimal("1100.00"),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestCreateRetainer:

    def test_opens_with_initial_deposit(self, company, user):
        client_id = uuid.uuid4()
        db = FakeSession(results=[FakeResult([client_id])])

        retainer = asyncio.run(retainers.create_retainer(
            db, company.id, client_id, Decimal("2500"), user_id=user.id
        ))

        assert retainer.current_balance == Decimal("2500.00")
        assert retainer.status == "active"
        [deposit] = db.of_type(RetainerTransaction)
        assert deposit.type == "deposit"
        assert deposit.balance_after == Decimal("2500.00")
        assert deposit.description == "Initial retainer deposit"
        assert len(db.of_type(ClientRetainer)) == 1
        assert db.commits == 1

    def test_amount_must_be_positive(self, company):
        with pytest.raises(InvalidOperation):
            asyncio.run(retainers.create_retainer(FakeSession(), company.id, uuid.uuid4(), Decimal("0")))


class TestAddFunds:

    def test_deposit_reactivates_a_depleted_retainer(self):
        retainer = _retainer(current_balance=Decimal("0.00"), status="depleted")
        db = FakeSession(results=[FakeResult([retainer])])

        asyncio.run(retainers.add_funds(db, retainer.company_id, retainer.id, Decimal("750")))

        assert retainer.current_balance == Decimal("750.00")
        assert retainer.status == "active"
        assert db.of_type(RetainerTransaction)[0].description == "Additional deposit"

    @pytest.mark.parametrize("status", ["refunded", "cancelled"])
    def test_closed_retainers_refuse_deposits(self, status):
        retainer = _retainer(current_balance=Decimal("0.00"), status=status)
        db = FakeSession(results=[FakeResult([retainer])])

        with pytest.raises(InvalidOperation):
            asyncio.run(retainers.add_funds(db, retainer.company_id, retainer.id, Decimal("100")))
        assert db.of_type(RetainerTransaction) == []


class TestApplyToInvoice:

    def test_credit_accumulates_and_total_due_follows(self, user):
        retainer = _retainer()
        invoice = _invoice_for(retainer, retainer_applied=Decimal("300.00"), total_due=Decimal("800.00"))
        db = FakeSession(results=[FakeResult([retainer]), FakeResult([invoice])])

        asyncio.run(retainers.apply_to_invoice(
            db, retainer.company_id, retainer.id, invoice.id, Decimal("200"), user_id=user.id
        ))

        assert retainer.current_balance == Decimal("4800.00")
        assert invoice.retainer_applied == Decimal("500.00")
        assert invoice.total_due == Decimal("600.00")
        assert invoice.retainer_id == retainer.id
        [draw] = db.of_type(RetainerTransaction)
        assert draw.type == "draw_down"
        assert draw.invoice_id == invoice.id
        assert draw.description == "Applied to invoice INV-00007"
        assert db.of_type(InvoiceActivity)[0].action == "retainer_applied"
        assert db.commits == 1

    def test_draining_the_balance_marks_depleted(self):
        retainer = _retainer(current_balance=Decimal("1100.00"))
        invoice = _invoice_for(retainer)
        db = FakeSession(results=[FakeResult([retainer]), FakeResult([invoice])])

        asyncio.run(retainers.apply_to_invoice(db, retainer.company_id, retainer.id, invoice.id, Decimal("1100")))

        assert retainer.status == "depleted"
        assert invoice.total_due == Decimal("0.00")

    def test_cannot_draw_more_than_is_due(self):
        retainer = _retainer()
        invoice = _invoice_for(retainer, subtotal=Decimal("100.00"), fees={}, total_due=Decimal("100.00"))
        db = FakeSession(results=[FakeResult([retainer]), FakeResult([invoice])])

        with pytest.raises(InvalidOperation):
            asyncio.run(retainers.apply_to_invoice(
                db, retainer.company_id, retainer.id, invoice.id, Decimal("5000")
            ))

        assert retainer.current_balance == Decimal("5000.00")
        assert invoice.retainer_applied == Decimal("0.00")
        assert db.of_type(RetainerTransaction) == []

    def test_other_clients_invoice_is_refused(self):
        retainer = _retainer()
        invoice = _invoice_for(retainer, client_id=uuid.uuid4())
        db = FakeSession(results=[FakeResult([retainer]), FakeResult([invoice])])

        with pytest.raises(InvalidOperation):
            asyncio.run(retainers.apply_to_invoice(db, retainer.company_id, retainer.id, invoice.id, Decimal("10")))

    def test_paid_invoice_is_refused(self):
        retainer = _retainer()
        invoice = _invoice_for(retainer, status="paid")
        db = FakeSession(results=[FakeResult([retainer]), FakeResult([invoice])])

        with pytest.raises(InvalidOperation):
            asyncio.run(retainers.apply_to_invoice(db, retainer.company_id, retainer.id, invoice.id, Decimal("10")))

    def test_overdraw_raises_insufficient_balance(self):
        retainer = _retainer(current_balance=Decimal("50.00"))
        invoice = _invoice_for(retainer)
        db = FakeSession(results=[FakeResult([retainer]), FakeResult([invoice])])

        with pytest.raises(InsufficientBalance):
            asyncio.run(retainers.apply_to_invoice(db, retainer.company_id, retainer.id, invoice.id, Decimal("60")))
        assert db.commits == 0


class TestRefundAdjustCancel:

    def test_refund_without_amount_empties_the_retainer(self):
        retainer = _retainer(current_balance=Decimal("1234.56"))
        db = FakeSession(results=[FakeResult([retainer])])

        asyncio.run(retainers.refund(db, retainer.company_id, retainer.id))

        assert retainer.current_balance == Decimal("0.00")
        assert retainer.status == "refunded"
        [entry] = db.of_type(RetainerTransaction)
        assert (entry.type, entry.amount) == ("refund", Decimal("1234.56"))

    def test_partial_refund_stays_active(self):
        retainer = _retainer()
        db = FakeSession(results=[FakeResult([retainer])])

        asyncio.run(retainers.refund(db, retainer.company_id, retainer.id, Decimal("1000")))

        assert retainer.current_balance == Decimal("4000.00")
        assert retainer.status == "active"

    def test_adjustment_down_to_zero_depletes(self):
        retainer = _retainer(current_balance=Decimal("25.00"))
        db = FakeSession(results=[FakeResult([retainer])])

        asyncio.run(retainers.adjust(db, retainer.company_id, retainer.id, Decimal("-25"), "Bank fee"))

        assert retainer.status == "depleted"
        assert db.of_type(RetainerTransaction)[0].type == "adjustment"

    def test_cancel_requires_zero_balance(self):
        retainer = _retainer(current_balance=Decimal("10.00"))
        db = FakeSession(results=[FakeResult([retainer])])

        with pytest.raises(InvalidOperation):
            asyncio.run(retainers.cancel(db, retainer.company_id, retainer.id))
        assert retainer.status == "active"

    def test_cancel_empty_retainer(self):
        retainer = _retainer(current_balance=Decimal("0.00"), status="depleted")
        db = FakeSession(results=[FakeResult([retainer])])

        asyncio.run(retainers.cancel(db, retainer.company_id, retainer.id))

        assert retainer.status == "cancelled"
