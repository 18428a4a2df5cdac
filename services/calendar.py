"""
Calendar Service

Two-way sync between Google Calendar and the local calendar_events table.
"""

import calendar as month_calendar
import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, List, Dict, Any, Tuple
from urllib.parse import quote

import httpx
from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import CalendarEvent, GoogleConnection
from services.errors import InvalidOperation, RecordNotFound, UpstreamError
from services.google import get_access_token, upstream_error

logger = logging.getLogger("ordino.services.calendar")

CALENDAR_API = "https://www.googleapis.com/calendar/v3/calendars"
MAX_RESULTS = 250

EVENT_FIELDS = (
    "title", "description", "location", "start_time", "end_time", "all_day",
    "event_type", "project_id", "client_id",
)


def default_sync_window(today: date) -> Tuple[datetime, datetime]:
    """First day of last month through the last day of the month two months ahead."""
    start = today.replace(day=1) - relativedelta(months=1)
    end_month = today.replace(day=1) + relativedelta(months=2)
    last_day = month_calendar.monthrange(end_month.year, end_month.month)[1]
    return (
        datetime.combine(start, time.min, tzinfo=timezone.utc),
        datetime.combine(end_month.replace(day=last_day), time(23, 59, 59), tzinfo=timezone.utc),
    )


def parse_event_time(value: Dict[str, str]) -> Tuple[Optional[datetime], bool]:
    """A Google start/end object as a UTC datetime plus an all-day flag."""
    if value.get("dateTime"):
        return date_parser.isoparse(value["dateTime"]).astimezone(timezone.utc), False
    if value.get("date"):
        return date_parser.isoparse(f"{value['date']}T00:00:00Z"), True
    return None, False


def event_from_google(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Local column values for a Google event, or None if it should be skipped."""
    if item.get("status") == "cancelled":
        return None
    start, all_day = parse_event_time(item.get("start") or {})
    end, _ = parse_event_time(item.get("end") or {})
    if start is None or end is None:
        return None

    return {
        "google_event_id": item["id"],
        "title": item.get("summary") or "(No title)",
        "description": item.get("description"),
        "location": item.get("location"),
        "start_time": start,
        "end_time": end,
        "all_day": all_day,
        "status": item.get("status") or "confirmed",
        "event_metadata": {
            "html_link": item.get("htmlLink"),
            "attendees": [a.get("email") for a in item.get("attendees") or [] if a.get("email")],
            "organizer": (item.get("organizer") or {}).get("email"),
        },
    }


def google_time(value: datetime, all_day: bool) -> Dict[str, str]:
    if all_day:
        return {"date": value.date().isoformat()}
    return {"dateTime": value.isoformat(), "timeZone": settings.default_timezone}


def event_to_google(data: Dict[str, Any]) -> Dict[str, Any]:
    all_day = bool(data.get("all_day"))
    body: Dict[str, Any] = {
        "summary": data["title"],
        "start": google_time(data["start_time"], all_day),
        "end": google_time(data["end_time"], all_day),
    }
    if data.get("description"):
        body["description"] = data["description"]
    if data.get("location"):
        body["location"] = data["location"]
    return body


def _events_url(calendar_id: str, event_id: Optional[str] = None) -> str:
    url = f"{CALENDAR_API}/{quote(calendar_id, safe='')}/events"
    if event_id:
        url += f"/{quote(event_id, safe='')}"
    return url


async def _google_request(
    db: AsyncSession,
    user_id: uuid.UUID,
    method: str,
    url: str,
    **kwargs
) -> httpx.Response:
    token = await get_access_token(db, user_id)
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.request(
                method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
    except httpx.HTTPError as e:
        raise UpstreamError(f"Calendar request failed: {e}") from e
    if response.status_code >= 400:
        raise upstream_error("Calendar", response)
    return response


# ============================================================================
# Operations
# ============================================================================

async def sync_events(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    time_min: Optional[datetime] = None,
    time_max: Optional[datetime] = None,
    calendar_id: str = "primary"
) -> Dict[str, int]:
    """Pull events from Google into the local table, upserting by event id."""
    if time_min is None or time_max is None:
        default_min, default_max = default_sync_window(date.today())
        time_min = time_min or default_min
        time_max = time_max or default_max

    response = await _google_request(
        db, user_id, "GET", _events_url(calendar_id),
        params={
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_RESULTS,
        }
    )
    items = response.json().get("items") or []

    result = await db.execute(
        select(CalendarEvent).where(
            CalendarEvent.company_id == company_id,
            CalendarEvent.google_event_id.in_([i["id"] for i in items if i.get("id")])
        )
    )
    existing = {event.google_event_id: event for event in result.scalars().all()}

    now = datetime.now(timezone.utc)
    synced = 0
    for item in items:
        values = event_from_google(item)
        if values is None:
            continue
        event = existing.get(values["google_event_id"])
        if event is None:
            event = CalendarEvent(
                company_id=company_id,
                user_id=user_id,
                google_calendar_id=calendar_id
            )
            db.add(event)
        for key, value in values.items():
            setattr(event, key, value)
        event.sync_status = "synced"
        event.last_synced_at = now
        synced += 1

    await db.commit()
    logger.info(f"Synced {synced} of {len(items)} calendar events for user {user_id}")
    return {"synced": synced, "total": len(items)}


async def list_events(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None
) -> List[CalendarEvent]:
    query = (
        select(CalendarEvent)
        .where(CalendarEvent.company_id == company_id, CalendarEvent.user_id == user_id)
        .order_by(CalendarEvent.start_time.asc())
    )
    if start:
        query = query.where(CalendarEvent.end_time >= start)
    if end:
        query = query.where(CalendarEvent.start_time <= end)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_event(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    event_id: uuid.UUID
) -> CalendarEvent:
    result = await db.execute(
        select(CalendarEvent).where(
            CalendarEvent.id == event_id,
            CalendarEvent.company_id == company_id,
            CalendarEvent.user_id == user_id
        )
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise RecordNotFound("Event not found")
    return event


async def create_event(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    data: Dict[str, Any],
    calendar_id: str = "primary"
) -> CalendarEvent:
    """Create an event on Google first, then store it locally."""
    if not data.get("title") or not data.get("start_time") or not data.get("end_time"):
        raise InvalidOperation("title, start_time and end_time are required")
    if data["end_time"] < data["start_time"]:
        raise InvalidOperation("end_time must not be before start_time")

    response = await _google_request(
        db, user_id, "POST", _events_url(calendar_id), json=event_to_google(data)
    )
    created = response.json()

    event = CalendarEvent(
        company_id=company_id,
        user_id=user_id,
        google_event_id=created.get("id"),
        google_calendar_id=calendar_id,
        sync_status="synced",
        last_synced_at=datetime.now(timezone.utc),
        event_metadata={"html_link": created.get("htmlLink")},
        **{k: data[k] for k in EVENT_FIELDS if k in data}
    )
    db.add(event)
    await db.commit()
    return event


async def update_event(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    event_id: uuid.UUID,
    data: Dict[str, Any]
) -> CalendarEvent:
    event = await get_event(db, company_id, user_id, event_id)
    for key in EVENT_FIELDS:
        if key in data:
            setattr(event, key, data[key])

    if event.google_event_id:
        await _google_request(
            db, user_id, "PATCH",
            _events_url(event.google_calendar_id, event.google_event_id),
            json=event_to_google({
                "title": event.title,
                "description": event.description,
                "location": event.location,
                "start_time": event.start_time,
                "end_time": event.end_time,
                "all_day": event.all_day,
            })
        )
        event.sync_status = "synced"
        event.last_synced_at = datetime.now(timezone.utc)
    await db.commit()
    return event


async def delete_event(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    event_id: uuid.UUID
) -> None:
    event = await get_event(db, company_id, user_id, event_id)
    if event.google_event_id:
        try:
            await _google_request(
                db, user_id, "DELETE",
                _events_url(event.google_calendar_id, event.google_event_id)
            )
        except UpstreamError as e:
            # Already gone on Google's side
            if e.status_code != 410:
                raise
    await db.delete(event)
    await db.commit()


async def users_with_google(db: AsyncSession) -> List[Tuple[uuid.UUID, uuid.UUID]]:
    """(company_id, user_id) for every connected Google account."""
    result = await db.execute(select(GoogleConnection.company_id, GoogleConnection.user_id))
    return [(company_id, user_id) for company_id, user_id in result.all()]
