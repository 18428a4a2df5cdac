"""Project Information Sheets: templates, pre-fill, sending and the public form."""

import asyncio
import copy
import uuid
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from config.settings import settings
from database.models import Client, Notification, Proposal, RfiRequest, RfiTemplate
from services import rfi
from services.errors import InvalidOperation, RecordNotFound


def _project(**overrides):
    values = dict(
        id=uuid.uuid4(),
        project_number="PRJ-2026-0007",
        name="Alteration Type 2 at 5 Main St",
        proposal_id=uuid.uuid4(),
        client_id=uuid.uuid4(),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _proposal(**overrides):
    values = dict(
        property_address="5 Main St, Brooklyn, NY 11201",
        scope_of_work="Interior renovation of the 3rd floor",
        client_name="Main Street Holdings",
        client_email="owner@mainst.example",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _client(client_id, **overrides):
    values = dict(
        id=client_id,
        name="Main Street Holdings LLC",
        email="office@mainst.example",
        phone="(718) 555-0101",
        address="1 Court St, Brooklyn, NY",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _sent_request(**overrides):
    values = dict(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        project_id=uuid.uuid4(),
        title="Project Information Sheet: 5 Main St",
        recipient_name="Dana Owner",
        recipient_email="dana@mainst.example",
        status="sent",
        access_token="tok-123",
        sections=copy.deepcopy(rfi.DEFAULT_PIS_SECTIONS),
        responses={"project_address": "5 Main St", "job_description": "Interior renovation"},
        viewed_at=None,
        submitted_at=None,
        created_by=uuid.uuid4(),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestSections:

    def test_builtin_pis_is_valid(self):
        assert rfi.validate_sections(rfi.DEFAULT_PIS_SECTIONS) is rfi.DEFAULT_PIS_SECTIONS

    @pytest.mark.parametrize("sections", [
        [],
        [{"id": "a", "fields": []}],
        [{"id": "a", "title": "A", "fields": [{"id": "x", "label": "X", "type": "slider"}]}],
        [
            {"id": "a", "title": "A", "fields": [{"id": "x", "label": "X", "type": "text"}]},
            {"id": "b", "title": "B", "fields": [{"id": "x", "label": "X again", "type": "text"}]},
        ],
    ])
    def test_bad_layouts_are_refused(self, sections):
        with pytest.raises(InvalidOperation):
            rfi.validate_sections(sections)

    def test_headings_are_never_required_answers(self):
        fields = rfi.answerable_fields(rfi.DEFAULT_PIS_SECTIONS)
        assert "owner_heading" not in fields
        assert "owner_name" in fields

    def test_missing_required_lists_blank_labels(self):
        missing = rfi.missing_required(rfi.DEFAULT_PIS_SECTIONS, {
            "project_address": "5 Main St",
            "job_description": "   ",
            "applicant_name": "Ann Architect",
        })
        assert missing == ["Job Description", "Owner Name"]


class TestPrefill:

    def test_owner_from_client_and_primary_contact(self):
        contact = SimpleNamespace(name="Dana Owner", email="dana@mainst.example", phone=None, mobile="(917) 555-0199")
        client = _client(uuid.uuid4())

        answers = rfi.pis_prefill(_project(), _proposal(), client, contact)

        assert answers["project_address"] == "5 Main St, Brooklyn, NY 11201"
        assert answers["job_description"] == "Interior renovation of the 3rd floor"
        assert answers["owner_name"] == "Dana Owner"
        assert answers["owner_company"] == "Main Street Holdings LLC"
        assert answers["owner_email"] == "dana@mainst.example"
        assert answers["owner_phone"] == "(917) 555-0199"
        assert answers["owner_address"] == "1 Court St, Brooklyn, NY"

    def test_proposal_addressee_when_no_client(self):
        answers = rfi.pis_prefill(_project(), _proposal())
        assert answers["owner_name"] == "Main Street Holdings"
        assert "owner_company" not in answers

    def test_earlier_answers_carry_over(self):
        prior = {"gc_name": "Bob Builder", "gc_company": "Builder Bros", "sq_ft": "1200", "tpp_email": ""}

        answers = rfi.pis_prefill(_project(), None, None, None, prior)

        assert answers["gc_name"] == "Bob Builder"
        assert answers["gc_company"] == "Builder Bros"
        # Building details belong to the old project
        assert "sq_ft" not in answers
        assert "tpp_email" not in answers
        assert answers["job_description"] == "Alteration Type 2 at 5 Main St"

    def test_contact_fields_respect_party_layout(self):
        contact = SimpleNamespace(name="Tess Tenant", email="tess@example.com", phone="(212) 555-0000", mobile=None)
        assert rfi.contact_fields("tpp", contact=contact) == {"tpp_name": "Tess Tenant", "tpp_email": "tess@example.com"}
        assert rfi.contact_fields("unknown", contact=contact) == {}


class TestTemplates:

    def test_default_template_unsets_the_previous_one(self, company):
        statements = []

        class RecordingSession(FakeSession):
            async def execute(self, statement):
                statements.append(str(statement))
                return await super().execute(statement)

        db = RecordingSession()

        template = asyncio.run(rfi.create_template(db, company.id, {"name": "PIS (NYC)", "is_default": True}))

        assert isinstance(template, RfiTemplate)
        assert template.is_default is True
        assert template.sections == rfi.DEFAULT_PIS_SECTIONS
        assert len(statements) == 1
        assert statements[0].startswith("UPDATE rfi_templates")
        assert "is_default" in statements[0]
        assert db.commits == 1

    def test_invalid_sections_are_not_saved(self, company):
        db = FakeSession()
        with pytest.raises(InvalidOperation):
            asyncio.run(rfi.create_template(db, company.id, {
                "name": "Broken", "sections": [{"id": "a", "title": "A", "fields": [{"id": "x", "type": "text"}]}],
            }))
        assert db.of_type(RfiTemplate) == []
        assert db.commits == 0


class TestCreatePis:

    def test_drafts_prefilled_request_for_primary_contact(self, company, user):
        project = _project()
        contact = SimpleNamespace(name="Dana Owner", email="dana@mainst.example", phone="(718) 555-0102", mobile=None)
        db = FakeSession(
            results=[
                FakeResult([project]),
                FakeResult([]),
                FakeResult([contact]),
                FakeResult([{"gc_name": "Bob Builder"}]),
            ],
            records={
                (Proposal, project.proposal_id): _proposal(),
                (Client, project.client_id): _client(project.client_id),
            },
        )

        request = asyncio.run(rfi.create_pis_request(db, company.id, project.id, user.id))

        assert isinstance(request, RfiRequest)
        assert request.status == "draft"
        assert request.template_id is None
        assert request.sections == rfi.DEFAULT_PIS_SECTIONS
        assert request.recipient_name == "Dana Owner"
        assert request.recipient_email == "dana@mainst.example"
        assert request.responses["owner_name"] == "Dana Owner"
        assert request.responses["gc_name"] == "Bob Builder"
        assert len(request.access_token) >= 40
        assert request.created_by == user.id
        assert db.commits == 1

    def test_company_default_template_is_used(self, company):
        project = _project(client_id=None)
        template = SimpleNamespace(id=uuid.uuid4(), sections=[
            {"id": "basics", "title": "Basics", "fields": [{"id": "owner_name", "label": "Owner", "type": "text"}]},
        ])
        db = FakeSession(
            results=[FakeResult([project]), FakeResult([template])],
            records={(Proposal, project.proposal_id): _proposal()},
        )

        request = asyncio.run(rfi.create_pis_request(db, company.id, project.id))

        assert request.template_id == template.id
        assert request.sections == template.sections
        assert request.recipient_email == "owner@mainst.example"

    def test_unknown_project(self, company):
        with pytest.raises(RecordNotFound):
            asyncio.run(rfi.create_pis_request(FakeSession(), company.id, uuid.uuid4()))


class TestSend:

    def test_emails_the_link_then_marks_sent(self, company, user, monkeypatch):
        request = _sent_request(status="draft", company_id=company.id)
        sent = []

        async def fake_send(db, company_id, user_id, to, subject, html_body):
            sent.append((to, subject, html_body))
            return {"message_id": "m-1", "thread_id": "t-1"}

        monkeypatch.setattr(rfi.gmail, "send_email", fake_send)
        db = FakeSession(results=[FakeResult([request])])

        updated, link = asyncio.run(rfi.send_request(db, company.id, request.id, user.id))

        assert link.endswith("/tok-123")
        assert updated.status == "sent"
        assert updated.sent_at is not None
        assert sent[0][0] == "dana@mainst.example"
        assert link in sent[0][2]

    def test_gmail_failure_leaves_request_unsent(self, company, user, monkeypatch):
        from services.errors import UpstreamError
        request = _sent_request(status="draft", sent_at=None)

        async def failing_send(*args, **kwargs):
            raise UpstreamError("Gmail authorization expired", status_code=401, needs_reauth=True)

        monkeypatch.setattr(rfi.gmail, "send_email", failing_send)
        db = FakeSession(results=[FakeResult([request])])

        with pytest.raises(UpstreamError):
            asyncio.run(rfi.send_request(db, company.id, request.id, user.id))
        assert request.status == "draft"
        assert request.sent_at is None
        assert db.commits == 0

    def test_link_only(self, company, monkeypatch):
        monkeypatch.setattr(settings, "public_form_url", "https://forms.example.com/rfi/")
        request = _sent_request(status="draft", recipient_email=None)
        db = FakeSession(results=[FakeResult([request])])

        updated, link = asyncio.run(rfi.send_request(db, company.id, request.id, deliver=False))

        assert updated.status == "sent"
        assert link == "https://forms.example.com/rfi/tok-123"

    def test_submitted_form_cannot_be_resent(self, company):
        db = FakeSession(results=[FakeResult([_sent_request(status="submitted")])])
        with pytest.raises(InvalidOperation):
            asyncio.run(rfi.send_request(db, company.id, uuid.uuid4(), deliver=False))


class TestPublicForm:

    def test_first_open_marks_viewed(self):
        request = _sent_request()
        db = FakeSession(results=[FakeResult([request])])

        opened = asyncio.run(rfi.open_public(db, "tok-123"))

        assert opened.status == "viewed"
        assert opened.viewed_at is not None
        assert db.commits == 1

    def test_draft_is_not_public(self):
        db = FakeSession(results=[FakeResult([_sent_request(status="draft")])])
        with pytest.raises(RecordNotFound):
            asyncio.run(rfi.open_public(db, "tok-123"))

    def test_submit_merges_answers_and_notifies_sender(self):
        request = _sent_request()
        db = FakeSession(results=[FakeResult([request])])

        submitted = asyncio.run(rfi.submit_public(db, "tok-123", {
            "owner_name": "Dana Owner",
            "applicant_name": "Ann Architect",
            "applicant_name_2": "Sam Engineer",
            "is_admin": True,
        }))

        assert submitted.status == "submitted"
        assert submitted.submitted_at is not None
        assert submitted.responses["project_address"] == "5 Main St"
        assert submitted.responses["applicant_name_2"] == "Sam Engineer"
        assert "is_admin" not in submitted.responses
        [notification] = db.of_type(Notification)
        assert notification.user_id == request.created_by
        assert notification.type == "rfi_submitted"
        assert db.commits == 1

    def test_incomplete_submission_is_refused(self):
        request = _sent_request()
        db = FakeSession(results=[FakeResult([request])])

        with pytest.raises(InvalidOperation, match="Owner Name"):
            asyncio.run(rfi.submit_public(db, "tok-123", {"applicant_name": "Ann Architect"}))
        assert request.status == "sent"
        assert db.commits == 0

    def test_second_submission_is_refused(self):
        db = FakeSession(results=[FakeResult([_sent_request(status="submitted")])])
        with pytest.raises(InvalidOperation):
            asyncio.run(rfi.submit_public(db, "tok-123", {"owner_name": "Someone Else"}))


class TestPublicRoutes:

    def test_submit_without_login(self, api, monkeypatch):
        async def fake_submit(db, token, responses):
            assert token == "tok-123"
            return _sent_request(status="submitted", responses=responses)

        monkeypatch.setattr(rfi, "submit_public", fake_submit)

        response = api.post("/api/v1/rfi/public/tok-123", json={"responses": {"owner_name": "Dana"}})

        assert response.status_code == 200
        assert response.json()["status"] == "submitted"
        assert "access_token" not in response.json()

    def test_unknown_token_is_404(self, api, monkeypatch):
        async def missing(db, token):
            raise RecordNotFound("Form not found")

        monkeypatch.setattr(rfi, "open_public", missing)

        response = api.get("/api/v1/rfi/public/nope")

        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Form not found"
