"""Recurring billing: date stepping and the nightly run."""

import asyncio
import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from database.models import BillingRequest, Invoice
from services import billing_schedules
from services.errors import InvalidOperation


def _schedule(**overrides):
    values = dict(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        project_id=uuid.uuid4(),
        service_name="Monthly DOB monitoring",
        billing_method="fixed",
        billing_value=Decimal("400"),
        frequency="monthly",
        next_bill_date=date(2026, 1, 31),
        end_date=None,
        max_occurrences=None,
        occurrences_completed=0,
        auto_approve=False,
        is_active=True,
        billed_to_contact_id=None,
        created_by=None,
        last_billed_at=None,
        anchor_day=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestNextBillDate:

    @pytest.mark.parametrize("frequency,expected", [
        ("weekly", date(2026, 2, 7)),
        ("biweekly", date(2026, 2, 14)),
        ("monthly", date(2026, 2, 28)),
        ("quarterly", date(2026, 4, 30)),
    ])
    def test_steps(self, frequency, expected):
        assert billing_schedules.next_bill_date(date(2026, 1, 31), frequency) == expected

    def test_unknown_frequency(self):
        with pytest.raises(InvalidOperation):
            billing_schedules.next_bill_date(date(2026, 1, 1), "daily")

    def test_month_end_anchor_survives_february(self):
        dates = [date(2026, 1, 31)]
        for _ in range(3):
            dates.append(billing_schedules.next_bill_date(dates[-1], "monthly", anchor_day=31))
        assert dates == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30)]

    def test_quarterly_anchor(self):
        assert billing_schedules.next_bill_date(date(2026, 2, 28), "quarterly", anchor_day=30) == date(2026, 5, 30)

    def test_weekly_ignores_anchor(self):
        assert billing_schedules.next_bill_date(date(2026, 2, 28), "weekly", anchor_day=31) == date(2026, 3, 7)


class TestExhausted:

    def test_occurrence_cap(self):
        schedule = _schedule(max_occurrences=3, occurrences_completed=3)
        assert billing_schedules.is_exhausted(schedule, date(2026, 1, 1))

    def test_end_date_passed(self):
        schedule = _schedule(end_date=date(2026, 1, 15))
        assert billing_schedules.is_exhausted(schedule, date(2026, 1, 16))
        assert not billing_schedules.is_exhausted(schedule, date(2026, 1, 15))

    def test_open_ended(self):
        assert not billing_schedules.is_exhausted(_schedule(), date(2030, 1, 1))


class TestServiceItem:

    def test_fixed(self):
        item = billing_schedules.service_item(_schedule())
        assert item["description"] == "$400.00 recurring"
        assert item["amount"] == "400.00"

    def test_percentage(self):
        item = billing_schedules.service_item(
            _schedule(billing_method="percentage", billing_value=Decimal("5"))
        )
        assert item["description"] == "5% recurring"

    @pytest.mark.parametrize("stored,text", [
        (Decimal("10.00"), "10% recurring"),
        (Decimal("12.50"), "12.5% recurring"),
        (Decimal("7.25"), "7.25% recurring"),
    ])
    def test_percentage_as_stored(self, stored, text):
        item = billing_schedules.service_item(
            _schedule(billing_method="percentage", billing_value=stored)
        )
        assert item["description"] == text

    @pytest.mark.parametrize("data", [
        {"frequency": "daily"},
        {"billing_method": "hourly"},
        {"billing_value": "0"},
    ])
    def test_validation(self, data):
        with pytest.raises(InvalidOperation):
            billing_schedules._validate(data)


class TestProcessDue:

    def test_bills_request_only(self):
        schedule = _schedule()
        db = FakeSession(results=[
            FakeResult([schedule.id]),
            FakeResult([(schedule, SimpleNamespace(client_id=uuid.uuid4()))]),
        ])

        processed = asyncio.run(billing_schedules.process_due_schedules(db, date(2026, 2, 1)))

        assert processed == 1
        request = db.of_type(BillingRequest)[0]
        assert request.status == "pending"
        assert request.total_amount == Decimal("400.00")
        assert db.of_type(Invoice) == []
        assert schedule.next_bill_date == date(2026, 2, 28)
        assert schedule.occurrences_completed == 1
        assert db.commits == 1

    def test_auto_approve_creates_ready_invoice(self):
        schedule = _schedule(auto_approve=True)
        project = SimpleNamespace(client_id=uuid.uuid4())
        db = FakeSession(results=[
            FakeResult([schedule.id]),
            FakeResult([(schedule, project)]),
            FakeResult([SimpleNamespace(invoice_seq=11)]),
        ])

        asyncio.run(billing_schedules.process_due_schedules(db, date(2026, 2, 1)))

        invoice = db.of_type(Invoice)[0]
        request = db.of_type(BillingRequest)[0]
        assert invoice.invoice_number == "INV-00012"
        assert invoice.status == "ready_to_send"
        assert invoice.client_id == project.client_id
        assert invoice.total_due == Decimal("400.00")
        assert request.status == "invoiced"
        assert request.invoice_id == invoice.id

    def test_exhausted_schedule_is_deactivated(self):
        schedule = _schedule(max_occurrences=2, occurrences_completed=2)
        db = FakeSession(results=[
            FakeResult([schedule.id]),
            FakeResult([(schedule, None)]),
        ])

        processed = asyncio.run(billing_schedules.process_due_schedules(db, date(2026, 2, 1)))

        assert processed == 0
        assert schedule.is_active is False
        assert db.of_type(BillingRequest) == []

    def test_failure_rolls_back_and_continues(self):
        broken = _schedule(frequency="daily")
        healthy = _schedule()
        db = FakeSession(results=[
            FakeResult([broken.id, healthy.id]),
            FakeResult([(broken, None)]),
            FakeResult([(healthy, None)]),
        ])

        processed = asyncio.run(billing_schedules.process_due_schedules(db, date(2026, 2, 1)))

        assert processed == 1
        assert db.rollbacks == 1
        assert healthy.occurrences_completed == 1

    def test_nightly_run_returns_to_the_anchor_day(self):
        schedule = _schedule(next_bill_date=date(2026, 2, 28), anchor_day=31, occurrences_completed=1)
        db = FakeSession(results=[
            FakeResult([schedule.id]),
            FakeResult([(schedule, None)]),
        ])

        asyncio.run(billing_schedules.process_due_schedules(db, date(2026, 2, 28)))

        assert schedule.next_bill_date == date(2026, 3, 31)


class TestCreateSchedule:

    def test_first_bill_date_sets_the_anchor(self):
        db = FakeSession(results=[FakeResult([uuid.uuid4()])])

        schedule = asyncio.run(billing_schedules.create_schedule(
            db, uuid.uuid4(), uuid.uuid4(),
            {
                "service_name": "Monthly DOB monitoring",
                "billing_method": "fixed",
                "billing_value": Decimal("400"),
                "frequency": "monthly",
                "next_bill_date": date(2026, 1, 31),
            }
        ))

        assert schedule.anchor_day == 31
        assert db.commits == 1

    def test_rescheduling_moves_the_anchor(self):
        schedule = _schedule(anchor_day=31)
        db = FakeSession(results=[FakeResult([schedule])])

        asyncio.run(billing_schedules.update_schedule(
            db, schedule.company_id, schedule.id, {"next_bill_date": date(2026, 3, 15)}
        ))

        assert schedule.next_bill_date == date(2026, 3, 15)
        assert schedule.anchor_day == 15
