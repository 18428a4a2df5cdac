"""Payment analytics, risk predictions and collection messages."""

import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from services import payments


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _invoice(total, created, sent=None, due=None, paid=None):
    return SimpleNamespace(
        total_due=Decimal(total), created_at=created, sent_at=sent, due_date=due, paid_at=paid
    )


class TestClientAnalytics:

    def test_rollup(self):
        invoices = [
            _invoice("1000", _utc(2026, 1, 1), _utc(2026, 1, 2), date(2026, 2, 1), _utc(2026, 1, 22)),
            _invoice("2000", _utc(2026, 2, 1), _utc(2026, 2, 1), date(2026, 3, 3), _utc(2026, 3, 13)),
            _invoice("500", _utc(2026, 5, 1)),
            # Older than twelve months: counts toward averages, not on-time/late
            _invoice("300", _utc(2024, 1, 1), _utc(2024, 1, 1), date(2024, 1, 31), _utc(2024, 3, 1)),
        ]

        values = payments.compute_client_analytics(invoices, reminder_count=2, now=_utc(2026, 6, 1))

        assert values["avg_days_to_payment"] == 40.0
        assert values["payment_reliability_score"] == 50
        assert values["last_12mo_invoices"] == 3
        assert values["last_12mo_paid_on_time"] == 1
        assert values["last_12mo_late"] == 1
        assert values["longest_days_late"] == 30
        assert values["responds_to_reminders"] is False
        assert values["total_lifetime_value"] == Decimal("3800.00")
        assert values["last_payment_date"] == date(2026, 3, 13)

    def test_no_invoices(self):
        values = payments.compute_client_analytics([], reminder_count=0)
        assert values["avg_days_to_payment"] is None
        assert values["payment_reliability_score"] is None
        assert values["last_payment_date"] is None

    def test_reliability_rounds_half_up(self):
        on_time = [
            _invoice("100", _utc(2026, 3, 1), _utc(2026, 3, 1), date(2026, 3, 31), _utc(2026, 3, 20))
            for _ in range(5)
        ]
        late = [
            _invoice("100", _utc(2026, 3, 1), _utc(2026, 3, 1), date(2026, 3, 31), _utc(2026, 4, 10))
            for _ in range(3)
        ]
        values = payments.compute_client_analytics(on_time + late, reminder_count=1, now=_utc(2026, 6, 1))
        assert values["payment_reliability_score"] == 63
        assert values["responds_to_reminders"] is True

    def test_average_days_rounds_half_up(self):
        # 81 days over 8 invoices is 10.125
        invoices = [_invoice("100", _utc(2026, 3, 1), _utc(2026, 3, 1), paid=_utc(2026, 3, 12))] + [
            _invoice("100", _utc(2026, 3, 1), _utc(2026, 3, 1), paid=_utc(2026, 3, 11))
            for _ in range(7)
        ]
        values = payments.compute_client_analytics(invoices, reminder_count=0, now=_utc(2026, 6, 1))
        assert values["avg_days_to_payment"] == 10.13

    def test_missing_due_date_counts_as_on_time(self):
        invoices = [_invoice("100", _utc(2026, 5, 1), paid=_utc(2026, 5, 20))]
        values = payments.compute_client_analytics(invoices, reminder_count=1, now=_utc(2026, 6, 1))
        assert values["payment_reliability_score"] == 100
        assert values["responds_to_reminders"] is True


class TestRiskPrediction:

    @pytest.mark.parametrize("days,score", [(10, 30), (45, 50), (90, 70)])
    def test_heuristic(self, days, score):
        risk = payments.heuristic_risk(days)
        assert risk["risk_score"] == score
        assert risk["predicted_days_late"] == days + 15
        assert risk["confidence_level"] == "low"

    def test_parse_reply_with_prose(self):
        assert payments.parse_risk_reply('Here it is: {"risk_score": 20} hope that helps', 5) == {
            "risk_score": 20
        }

    def test_unparseable_reply_uses_heuristic(self):
        assert payments.parse_risk_reply("no idea", 45)["risk_score"] == 50

    def test_build_prediction_clamps(self):
        values = payments.build_prediction(
            {"risk_score": "140", "predicted_days_late": 12,
             "confidence_level": "certain", "factors": ["late"]},
            today=date(2026, 3, 1)
        )
        assert values == {
            "risk_score": 100,
            "predicted_days_late": 12,
            "predicted_payment_date": date(2026, 3, 13),
            "confidence_level": "medium",
            "factors": {},
        }

    def test_build_prediction_defaults(self):
        values = payments.build_prediction({}, today=date(2026, 3, 1))
        assert values["risk_score"] == 50
        assert values["predicted_days_late"] is None
        assert values["predicted_payment_date"] == date(2026, 3, 1)


class TestCollections:

    @pytest.mark.parametrize("days,tone,urgency", [
        (0, "friendly", "low"),
        (31, "firm", "medium"),
        (61, "urgent", "high"),
    ])
    def test_defaults_by_age(self, days, tone, urgency):
        assert payments.default_tone(days) == tone
        assert payments.default_urgency(days) == urgency

    def test_fallback_message(self):
        message = payments.fallback_collection_message(
            "INV-00004", Decimal("1200"), 45, None, "Demo Expediting LLC"
        )
        assert message["subject"] == "Payment Reminder: Invoice INV-00004"
        assert message["body"].startswith("Dear Client,")
        assert "$1,200.00 is 45 days past due" in message["body"]
        assert message["body"].endswith("Demo Expediting LLC")

    def test_unparseable_draft_falls_back(self, company, monkeypatch):
        import agents.payment_agents

        seen = {}

        def fake_write(invoice_context, client_context, company_name, tone, urgency, plan):
            seen.update(tone=tone, urgency=urgency, plan=plan)
            return "Sorry, I can't help with that."

        monkeypatch.setattr(agents.payment_agents, "write_collection_message", fake_write)
        invoice = SimpleNamespace(
            id=uuid.uuid4(), invoice_number="INV-00009", total_due=Decimal("800"),
            status="overdue", client_id=None, project_id=None,
            due_date=date.today() - timedelta(days=45)
        )
        db = FakeSession(results=[FakeResult([invoice]), FakeResult([3])])

        message = asyncio.run(payments.collection_message(
            db, company, invoice.id, offer_payment_plan=True
        ))

        assert seen == {"tone": "firm", "urgency": "medium", "plan": True}
        assert message["tone"] == "firm"
        assert message["subject"] == "Payment Reminder: Invoice INV-00009"
        assert "45 days past due" in message["body"]
