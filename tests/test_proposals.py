"""Proposal totals, conversion to projects, follow-up drafting and leads."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from database.models import Notification, Project, ProjectService, Proposal
from services import proposals
from services.errors import InvalidOperation


def _proposal(**overrides):
    values = dict(
        id=uuid.uuid4(),
        proposal_number="PRO-00012",
        title="Alteration Type 1 - 45 Water St",
        status="sent",
        client_id=uuid.uuid4(),
        client_name="Harbor View",
        property_address="45 Water St",
        retainer_amount=Decimal("500"),
        assigned_pm_id=None,
        converted_project_id=None,
        subtotal=Decimal("5300"),
        total_amount=Decimal("5300"),
        sent_at=None,
        viewed_at=None,
        follow_up_count=0,
        items=[
            SimpleNamespace(name="DOB filing", description=None, total_price=Decimal("3500")),
            SimpleNamespace(name="Plan examiner meetings", description="4 visits", total_price=Decimal("1800")),
        ],
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestTotals:

    def test_subtotal_tax_and_total(self):
        subtotal, tax, total = proposals.compute_totals(
            [{"quantity": 2, "unit_price": "1000"}, {"unit_price": "250.25"}],
            Decimal("8.875")
        )
        assert subtotal == Decimal("2250.25")
        assert tax == Decimal("199.71")
        assert total == Decimal("2449.96")

    def test_no_tax(self):
        assert proposals.compute_totals([{"quantity": 1, "unit_price": 100}]) == (
            Decimal("100.00"), Decimal("0.00"), Decimal("100.00")
        )

    def test_milestone_amount(self):
        assert proposals.milestone_amount({"percentage": 25}, Decimal("4000")) == Decimal("1000.00")
        assert proposals.milestone_amount({"amount": "750", "percentage": 25}, Decimal("4000")) == Decimal("750.00")
        assert proposals.milestone_amount({}, Decimal("4000")) is None


class TestSignInternal:

    def test_converts_to_project_with_one_service_per_line(self, company, user):
        pm_id = uuid.uuid4()
        proposal = _proposal()
        db = FakeSession(results=[
            FakeResult([proposal]),
            FakeResult([SimpleNamespace(id=company.id, project_seq=41)]),
        ])

        signed, project = asyncio.run(
            proposals.sign_internal(db, company.id, proposal.id, user.id, assigned_pm_id=pm_id)
        )

        assert project.project_number == "PRJ-00042"
        assert project.name == proposal.title
        assert project.retainer_balance == Decimal("500.00")
        assert signed.status == "signed_internal"
        assert signed.converted_project_id == project.id
        assert signed.assigned_pm_id == pm_id

        services = db.of_type(ProjectService)
        assert [s.name for s in services] == ["DOB filing", "Plan examiner meetings"]
        assert all(s.project_id == project.id for s in services)

        notifications = db.of_type(Notification)
        assert len(notifications) == 1
        assert notifications[0].user_id == pm_id
        assert notifications[0].link == f"/projects/{project.id}"
        assert db.commits == 1

    def test_signer_is_not_notified_about_their_own_project(self, company, user):
        proposal = _proposal(assigned_pm_id=user.id)
        db = FakeSession(results=[
            FakeResult([proposal]),
            FakeResult([SimpleNamespace(id=company.id, project_seq=0)]),
        ])
        asyncio.run(proposals.sign_internal(db, company.id, proposal.id, user.id))
        assert db.of_type(Notification) == []

    def test_cannot_convert_twice(self, company, user):
        proposal = _proposal(converted_project_id=uuid.uuid4())
        db = FakeSession(results=[FakeResult([proposal])])
        with pytest.raises(InvalidOperation):
            asyncio.run(proposals.sign_internal(db, company.id, proposal.id, user.id))
        assert db.of_type(Project) == []

    @pytest.mark.parametrize("status", ["lost", "approved"])
    def test_closed_proposals_cannot_be_signed(self, company, user, status):
        proposal = _proposal(status=status)
        db = FakeSession(results=[FakeResult([proposal])])
        with pytest.raises(InvalidOperation):
            asyncio.run(proposals.sign_internal(db, company.id, proposal.id, user.id))


class TestFollowUpDrafting:

    def test_tone_progression(self):
        assert proposals.follow_up_tone(0, False, Decimal("100")).startswith("First follow-up")
        assert proposals.follow_up_tone(1, True, Decimal("100")).startswith("They viewed it")
        assert proposals.follow_up_tone(3, False, Decimal("100")).startswith("Multiple follow-ups")
        assert proposals.follow_up_tone(1, False, Decimal("100")).startswith("Standard follow-up")

    def test_high_value_guidance(self):
        guidance = proposals.follow_up_tone(0, False, Decimal("1000000"))
        assert "high-value" in guidance

    def test_context_mentions_unopened_proposal(self, company):
        now = datetime(2026, 5, 10, tzinfo=timezone.utc)
        proposal = _proposal(sent_at=now - timedelta(days=6), follow_up_count=1)
        context = proposals.follow_up_context(proposal, company, "Pat", now=now)
        assert "Days since sent: 6" in context
        assert "NOT opened" in context
        assert "Sender name: Pat" in context
        assert "Total amount: $5,300.00" in context

    def test_text_to_html(self):
        assert proposals.text_to_html("Hi Dana,\n\nThanks") == "<p>Hi Dana,</p><br><p>Thanks</p>"


class TestLeads:

    def test_lead_becomes_draft_proposal_assigned_to_admin(self, company):
        admin_id = uuid.uuid4()
        db = FakeSession(results=[
            FakeResult([SimpleNamespace(id=company.id)]),
            FakeResult([admin_id]),
            FakeResult([SimpleNamespace(id=company.id, proposal_seq=2)]),
        ])

        proposal = asyncio.run(proposals.receive_lead(
            db, first_name="Dana", last_name="Ortiz", email="dana@harbor.local",
            phone="(212) 555-0199", address="45 Water St", service_needed="Alt-1"
        ))

        assert proposal.proposal_number == "PRO-00003"
        assert proposal.title == "Lead: Dana Ortiz - 45 Water St"
        assert proposal.status == "draft"
        assert proposal.assigned_pm_id == admin_id
        assert "Service: Alt-1" in proposal.notes
        assert "Source: website" in proposal.notes
        assert db.of_type(Proposal) == [proposal]

    def test_lead_needs_name_or_email(self):
        with pytest.raises(InvalidOperation):
            asyncio.run(proposals.receive_lead(FakeSession(), phone="555"))


class TestUpdate:

    def _priced(self):
        return _proposal(
            tax_rate=None,
            items=[SimpleNamespace(
                name="DOB filing", description=None, quantity=Decimal("1"),
                unit_price=Decimal("1000"), sort_order=0,
            )],
            milestones=[
                SimpleNamespace(
                    name="Deposit", description=None, percentage=Decimal("50"),
                    amount=Decimal("500.00"), due_date=None, sort_order=0,
                ),
                SimpleNamespace(
                    name="Filing fee", description=None, percentage=None,
                    amount=Decimal("120.00"), due_date=None, sort_order=1,
                ),
            ],
        )

    def test_reprice_recomputes_percentage_milestones(self, company):
        proposal = self._priced()
        db = FakeSession(results=[FakeResult([proposal]), FakeResult([proposal])])

        updated = asyncio.run(proposals.update_proposal(
            db, company.id, proposal.id,
            {"items": [{"name": "DOB filing", "quantity": 1, "unit_price": "2000"}]}
        ))

        assert updated.total_amount == Decimal("2000.00")
        assert [m.amount for m in updated.milestones] == [Decimal("1000.00"), Decimal("120.00")]

    def test_tax_change_moves_percentage_milestones(self, company):
        proposal = self._priced()
        db = FakeSession(results=[FakeResult([proposal]), FakeResult([proposal])])

        updated = asyncio.run(proposals.update_proposal(
            db, company.id, proposal.id, {"tax_rate": Decimal("10")}
        ))

        assert updated.total_amount == Decimal("1100.00")
        assert updated.milestones[0].amount == Decimal("550.00")
        assert updated.milestones[1].amount == Decimal("120.00")
