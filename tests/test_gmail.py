"""Gmail message building and sending."""

import asyncio
import base64
import email
import json
import uuid
from types import SimpleNamespace

import httpx
import pytest

from conftest import FakeResult, FakeSession
from database.models import Email, Invoice
from services import gmail
from services.errors import InvalidOperation, UpstreamError


@pytest.fixture
def connected(monkeypatch):
    async def token(db, user_id):
        return "access-1"

    async def connection(db, user_id):
        return SimpleNamespace(email="pm@gmail.test")

    monkeypatch.setattr(gmail, "get_access_token", token)
    monkeypatch.setattr(gmail, "get_connection", connection)


def _decode(raw: str):
    padded = raw + "=" * (-len(raw) % 4)
    return email.message_from_bytes(base64.urlsafe_b64decode(padded))


class TestMessage:

    def test_html_to_text(self):
        html = "<p>Dear Dana,</p><p>Invoice <b>INV-00002</b> is attached.<br>Thanks &amp; regards</p>"
        assert gmail.html_to_text(html) == "Dear Dana,\n\nInvoice INV-00002 is attached.\nThanks & regards"

    def test_alternative_without_attachments(self):
        message = gmail.build_mime_message(
            "client@example.com", "Hello", "<p>Hi</p>",
            from_address="pm@gmail.test", reply_to_message_id="<abc@mail>"
        )
        assert message.get_content_type() == "multipart/alternative"
        assert message["In-Reply-To"] == "<abc@mail>"
        assert [p.get_content_type() for p in message.get_payload()] == ["text/plain", "text/html"]

    def test_mixed_with_attachment(self):
        message = gmail.build_mime_message(
            "client@example.com", "Invoice", "<p>Attached</p>",
            attachments=[{"filename": "INV-00002.pdf", "content": b"%PDF-1.4", "mime_type": "application/pdf"}]
        )
        parts = message.get_payload()
        assert message.get_content_type() == "multipart/mixed"
        assert parts[1].get_content_type() == "application/pdf"
        assert parts[1].get_filename() == "INV-00002.pdf"

    def test_encoding_is_unpadded_base64url(self):
        raw = gmail.encode_message(gmail.build_mime_message("a@b.c", "S", "<p>x</p>"))
        assert "=" not in raw
        assert _decode(raw)["Subject"] == "S"


class TestSend:

    def test_requires_fields(self, fake_db, company, user):
        with pytest.raises(InvalidOperation):
            asyncio.run(gmail.send_email(fake_db, company.id, user.id, "", "Subject", "<p>x</p>"))

    def test_sends_and_logs(self, connected, mock_http, company, user):
        calls = mock_http(lambda request: httpx.Response(200, json={"id": "msg-1", "threadId": "thr-1"}))
        invoice = SimpleNamespace(id=uuid.uuid4(), company_id=company.id, gmail_message_id=None)
        db = FakeSession(records={(Invoice, invoice.id): invoice})

        sent = asyncio.run(gmail.send_email(
            db, company.id, user.id, "client@example.com", "Invoice INV-00002",
            "<p>Please find attached.</p>", thread_id="thr-0", invoice_id=invoice.id
        ))

        assert sent == {"message_id": "msg-1", "thread_id": "thr-1"}
        request = calls[0]
        assert request.headers["Authorization"] == "Bearer access-1"
        payload = json.loads(request.content)
        assert payload["threadId"] == "thr-0"
        assert _decode(payload["raw"])["From"] == "pm@gmail.test"

        logged = db.of_type(Email)[0]
        assert logged.direction == "outbound"
        assert logged.snippet == "Please find attached."
        assert invoice.gmail_message_id == "msg-1"
        assert db.commits == 1

    def test_expired_grant_flags_reauth(self, connected, mock_http, fake_db, company, user):
        mock_http(lambda request: httpx.Response(401, json={"error": "unauthorized"}))

        with pytest.raises(UpstreamError) as exc:
            asyncio.run(gmail.send_email(fake_db, company.id, user.id, "a@b.c", "S", "<p>x</p>"))
        assert exc.value.needs_reauth
        assert fake_db.of_type(Email) == []


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def _gmail_message(message_id="m-2", labels=("INBOX", "UNREAD"), with_attachment=True):
    parts = [
        {
            "mimeType": "multipart/alternative",
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64("Objections attached for job 1042.")}},
                {"mimeType": "text/html", "body": {"data": _b64("<p>Objections attached.</p>")}},
            ],
        },
    ]
    if with_attachment:
        parts.append({"mimeType": "application/pdf", "filename": "objections.pdf", "body": {"attachmentId": "a-1"}})
    return {
        "id": message_id,
        "threadId": "t-9",
        "labelIds": list(labels),
        "snippet": "Objections attached &amp; ready",
        "internalDate": "1767225600000",
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [
                {"name": "From", "value": '"Plan Examiner" <examiner@buildings.nyc.gov>'},
                {"name": "To", "value": "pm@gmail.test, office@demo.local"},
                {"name": "Subject", "value": "Objections - job 1042"},
                {"name": "Date", "value": "Tue, 03 Mar 2026 14:05:00 -0500"},
            ],
            "parts": parts,
        },
    }


class TestAttachmentTypes:

    def test_non_application_types_keep_their_main_type(self):
        message = gmail.build_mime_message(
            "dana@example.com", "Site photos", "<p>Photos attached</p>",
            attachments=[
                {"filename": "front.png", "content": b"\x89PNG\r\n", "mime_type": "image/png"},
                {"filename": "INV-00002.pdf", "content": b"%PDF-1.4", "mime_type": "application/pdf"},
            ]
        )
        types = [part.get_content_type() for part in message.get_payload()[1:]]
        assert types == ["image/png", "application/pdf"]
        assert message.get_payload()[1].get_payload(decode=True) == b"\x89PNG\r\n"


class TestInboundParsing:

    def test_full_message_becomes_an_email_row(self, company, user):
        row = gmail.email_from_gmail(company.id, user.id, _gmail_message())

        assert row.direction == "inbound"
        assert row.from_name == "Plan Examiner"
        assert row.from_address == "examiner@buildings.nyc.gov"
        assert row.to_address == "pm@gmail.test, office@demo.local"
        assert row.subject == "Objections - job 1042"
        assert row.body_text == "Objections attached for job 1042."
        assert row.snippet == "Objections attached & ready"
        assert row.is_read is False
        assert row.has_attachments is True
        assert row.received_at.isoformat() == "2026-03-03T14:05:00-05:00"

    def test_sent_label_is_outbound(self, company, user):
        row = gmail.email_from_gmail(company.id, user.id, _gmail_message(labels=["SENT"]))
        assert row.direction == "outbound"
        assert row.is_read is True

    def test_html_only_body_is_flattened(self, company, user):
        message = _gmail_message(with_attachment=False)
        message["payload"]["parts"][0]["parts"] = [
            {"mimeType": "text/html", "body": {"data": _b64("<p>Approved</p><p>See you Monday</p>")}},
        ]
        row = gmail.email_from_gmail(company.id, user.id, message)
        assert row.body_text == "Approved\n\nSee you Monday"
        assert row.has_attachments is False

    def test_message_without_payload_is_skipped(self, company, user):
        assert gmail.email_from_gmail(company.id, user.id, {"id": "m-3"}) is None

    def test_bad_date_header_falls_back_to_internal_date(self):
        when = gmail.message_time([{"name": "Date", "value": "sometime last week"}], "1767225600000")
        assert when.isoformat() == "2026-01-01T00:00:00+00:00"


class TestInboxSync:

    @pytest.fixture
    def connection(self, monkeypatch):
        stored = SimpleNamespace(email="pm@gmail.test", last_sync_at=None)

        async def token(db, user_id):
            return "access-1"

        async def get_connection(db, user_id):
            return stored

        monkeypatch.setattr(gmail, "get_access_token", token)
        monkeypatch.setattr(gmail, "get_connection", get_connection)
        return stored

    def test_stores_only_new_messages(self, connection, mock_http, company, user):
        def handler(request):
            if request.url.path.endswith("/messages"):
                assert request.url.params["maxResults"] == "50"
                return httpx.Response(200, json={"messages": [{"id": "m-1"}, {"id": "m-2"}]})
            assert request.url.params["format"] == "full"
            return httpx.Response(200, json=_gmail_message(request.url.path.rsplit("/", 1)[-1]))

        calls = mock_http(handler)
        db = FakeSession(results=[FakeResult(["m-1"])])

        result = asyncio.run(gmail.sync_inbox(db, company.id, user.id))

        assert result == {"synced": 1, "total_checked": 2}
        assert [c.url.path.rsplit("/", 1)[-1] for c in calls] == ["messages", "m-2"]
        assert all(c.headers["Authorization"] == "Bearer access-1" for c in calls)
        [stored] = db.of_type(Email)
        assert stored.gmail_message_id == "m-2"
        assert stored.company_id == company.id
        assert connection.last_sync_at is not None
        assert db.commits == 1

    def test_empty_mailbox(self, connection, mock_http, company, user):
        mock_http(lambda request: httpx.Response(200, json={"resultSizeEstimate": 0}))
        db = FakeSession()

        assert asyncio.run(gmail.sync_inbox(db, company.id, user.id)) == {"synced": 0, "total_checked": 0}
        assert connection.last_sync_at is not None

    def test_revoked_access_flags_reauth(self, connection, mock_http, company, user):
        mock_http(lambda request: httpx.Response(401, json={"error": "invalid_grant"}))

        with pytest.raises(UpstreamError) as exc:
            asyncio.run(gmail.sync_inbox(FakeSession(), company.id, user.id))
        assert exc.value.needs_reauth is True
