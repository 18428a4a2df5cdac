"""Google Calendar sync."""

import asyncio
import uuid
from datetime import date, datetime, timezone
from types import SimpleNamespace

import httpx
import pytest

from conftest import FakeResult, FakeSession
from database.models import CalendarEvent
from services import calendar
from services.errors import InvalidOperation, UpstreamError


@pytest.fixture
def token(monkeypatch):
    async def access_token(db, user_id):
        return "access-1"

    monkeypatch.setattr(calendar, "get_access_token", access_token)


def _google_event(event_id, **overrides):
    item = {
        "id": event_id,
        "status": "confirmed",
        "summary": "DOB plan exam",
        "start": {"dateTime": "2026-03-02T10:00:00-05:00"},
        "end": {"dateTime": "2026-03-02T11:00:00-05:00"},
        "attendees": [{"email": "examiner@buildings.test"}, {"displayName": "No email"}],
    }
    item.update(overrides)
    return item


class TestConversion:

    def test_default_window(self):
        start, end = calendar.default_sync_window(date(2026, 1, 15))
        assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 31, 23, 59, 59, tzinfo=timezone.utc)

    def test_timed_event_is_utc(self):
        value, all_day = calendar.parse_event_time({"dateTime": "2026-03-02T10:00:00-05:00"})
        assert value == datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
        assert all_day is False

    def test_all_day_event(self):
        value, all_day = calendar.parse_event_time({"date": "2026-03-02"})
        assert value == datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert all_day is True

    def test_cancelled_events_are_skipped(self):
        assert calendar.event_from_google(_google_event("e1", status="cancelled")) is None
        assert calendar.event_from_google(_google_event("e2", start={})) is None

    def test_event_from_google(self):
        values = calendar.event_from_google(_google_event("e1", summary=None))
        assert values["title"] == "(No title)"
        assert values["event_metadata"]["attendees"] == ["examiner@buildings.test"]

    def test_event_to_google(self):
        start = datetime(2026, 3, 2, tzinfo=timezone.utc)
        body = calendar.event_to_google({
            "title": "Site visit", "start_time": start, "end_time": start, "all_day": True
        })
        assert body == {
            "summary": "Site visit",
            "start": {"date": "2026-03-02"},
            "end": {"date": "2026-03-02"},
        }


class TestSync:

    def test_upserts_by_google_id(self, token, mock_http, company, user):
        calls = mock_http(lambda request: httpx.Response(200, json={"items": [
            _google_event("existing", summary="Moved exam"),
            _google_event("brand-new"),
            _google_event("gone", status="cancelled"),
        ]}))
        existing = SimpleNamespace(google_event_id="existing", title="Old title")
        db = FakeSession(results=[FakeResult([existing])])

        counts = asyncio.run(calendar.sync_events(
            db, company.id, user.id,
            time_min=datetime(2026, 3, 1, tzinfo=timezone.utc),
            time_max=datetime(2026, 3, 31, tzinfo=timezone.utc)
        ))

        assert counts == {"synced": 2, "total": 3}
        assert existing.title == "Moved exam"
        assert existing.sync_status == "synced"
        created = db.of_type(CalendarEvent)
        assert [e.google_event_id for e in created] == ["brand-new"]
        assert calls[0].url.params["singleEvents"] == "true"
        assert calls[0].headers["Authorization"] == "Bearer access-1"

    def test_upstream_failure(self, token, mock_http, fake_db, company, user):
        mock_http(lambda request: httpx.Response(403, json={}))
        with pytest.raises(UpstreamError) as exc:
            asyncio.run(calendar.sync_events(fake_db, company.id, user.id))
        assert exc.value.needs_reauth


class TestEvents:

    def test_end_before_start(self, fake_db, company, user):
        with pytest.raises(InvalidOperation):
            asyncio.run(calendar.create_event(fake_db, company.id, user.id, {
                "title": "Backwards",
                "start_time": datetime(2026, 3, 2, 11, tzinfo=timezone.utc),
                "end_time": datetime(2026, 3, 2, 10, tzinfo=timezone.utc),
            }))

    def test_create_pushes_to_google(self, token, mock_http, fake_db, company, user):
        calls = mock_http(lambda request: httpx.Response(
            200, json={"id": "g-1", "htmlLink": "https://calendar.test/g-1"}
        ))
        event = asyncio.run(calendar.create_event(fake_db, company.id, user.id, {
            "title": "Hearing",
            "start_time": datetime(2026, 3, 2, 10, tzinfo=timezone.utc),
            "end_time": datetime(2026, 3, 2, 11, tzinfo=timezone.utc),
            "event_type": "hearing",
        }))
        assert calls[0].method == "POST"
        assert event.google_event_id == "g-1"
        assert event.event_type == "hearing"

    def test_delete_tolerates_gone_event(self, token, mock_http, company, user):
        mock_http(lambda request: httpx.Response(410))
        event = SimpleNamespace(google_event_id="g-1", google_calendar_id="primary")
        db = FakeSession(results=[FakeResult([event])])

        asyncio.run(calendar.delete_event(db, company.id, user.id, uuid.uuid4()))

        assert db.deleted == [event]
