"""
Mapping between internal event types and Google Calendar API format.

Handles:
- DateTime formatting (RFC 3339 for Google API)
- All-day event handling
- Draft validation
- Holiday and editability flags
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional

from dateutil import tz as dateutil_tz
from dateutil.parser import parse as parse_datetime

from pocket_calendar.integrations.base import CalendarEvent, EventDraft, EventTime
from pocket_calendar.integrations.google_calendar.exceptions import (
    GoogleCalendarValidationError,
)


def resolve_timezone(name: str) -> tzinfo:
    """
    Look up an IANA timezone.

    Raises:
        ValueError: If the name is unknown
    """
    zone = dateutil_tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown timezone: {name}")
    return zone


class GoogleCalendarAdapter:
    """Maps between internal event types and Google Calendar API format."""

    @staticmethod
    def validate_draft(draft: EventDraft, time_zone: str = "UTC") -> None:
        """
        Check a draft before it is sent.

        Naive datetimes are interpreted in ``time_zone``, as in
        to_google_event.

        Raises:
            GoogleCalendarValidationError: If the title is blank or the
                event does not end after it starts
        """
        if not draft.title or not draft.title.strip():
            raise GoogleCalendarValidationError("Please enter a title for the event")

        if draft.all_day:
            if draft.end_time.date() < draft.start_time.date():
                raise GoogleCalendarValidationError("End date must not be before start date")
        else:
            zone = resolve_timezone(time_zone)
            if _as_aware(draft.start_time, zone) >= _as_aware(draft.end_time, zone):
                raise GoogleCalendarValidationError("End time must be after start time")

    @staticmethod
    def to_google_event(draft: EventDraft, time_zone: str = "UTC") -> dict:
        """
        Convert an event draft to Google Calendar API format.

        Naive datetimes are interpreted in ``time_zone``.

        Args:
            draft: Validated event draft
            time_zone: IANA timezone of the user

        Returns:
            Dict suitable for Google Calendar API insert/update
        """
        google_event: dict = {
            "summary": draft.title.strip(),
            "description": (draft.description or "").strip(),
            "location": (draft.location or "").strip(),
        }

        if draft.all_day:
            # All-day events use date instead of dateTime; end date is exclusive
            start_day = draft.start_time.date()
            end_day = max(draft.end_time.date(), start_day) + timedelta(days=1)
            google_event["start"] = {"date": start_day.isoformat()}
            google_event["end"] = {"date": end_day.isoformat()}
        else:
            zone = resolve_timezone(time_zone)
            google_event["start"] = {
                "dateTime": _format_datetime(draft.start_time, zone),
                "timeZone": time_zone,
            }
            google_event["end"] = {
                "dateTime": _format_datetime(draft.end_time, zone),
                "timeZone": time_zone,
            }

        return google_event

    @staticmethod
    def from_google_event(
        google_event: dict,
        calendar_id: str,
        is_holiday: bool = False,
        is_editable: bool = False,
    ) -> CalendarEvent:
        """
        Convert Google Calendar event to internal format.

        Args:
            google_event: Event from Google Calendar API
            calendar_id: Calendar ID the event belongs to
            is_holiday: Whether the event comes from the holiday calendar
            is_editable: Whether the user may modify the event

        Returns:
            CalendarEvent in internal format
        """
        metadata = {
            "etag": google_event.get("etag"),
            "html_link": google_event.get("htmlLink"),
            "status": google_event.get("status", "confirmed"),
        }

        return CalendarEvent(
            id=google_event.get("id", ""),
            calendar_id=calendar_id,
            summary=google_event.get("summary") or "Untitled Event",
            description=google_event.get("description"),
            location=google_event.get("location"),
            start=_parse_event_time(google_event.get("start", {})),
            end=_parse_event_time(google_event.get("end", {})),
            is_holiday=is_holiday,
            is_editable=is_editable and not is_holiday,
            metadata=metadata,
        )


def format_event_for_api(draft: EventDraft, time_zone: str = "UTC") -> dict:
    """Validate ``draft`` and convert it to an API request body."""
    GoogleCalendarAdapter.validate_draft(draft, time_zone=time_zone)
    return GoogleCalendarAdapter.to_google_event(draft, time_zone=time_zone)


def _as_aware(dt: datetime, zone: Optional[tzinfo] = None) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone or timezone.utc)
    return dt


def _format_datetime(dt: datetime, zone: Optional[tzinfo] = None) -> str:
    """
    Format datetime to RFC 3339 format for Google API.

    Args:
        dt: Datetime to format; naive values are taken to be in ``zone``
        zone: Timezone for naive values (UTC if None)

    Returns:
        RFC 3339 formatted string in UTC
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone or timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_datetime(dt_str: str) -> datetime:
    """
    Parse datetime string from Google API.

    Args:
        dt_str: RFC 3339 datetime string

    Returns:
        Parsed timezone-aware datetime (UTC if no offset given)
    """
    dt = parse_datetime(dt_str)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_date(date_str: str) -> date:
    """
    Parse date string from Google API (for all-day events).

    Args:
        date_str: Date string in YYYY-MM-DD format
    """
    return datetime.strptime(date_str, "%Y-%m-%d").date()


def _parse_event_time(data: dict) -> EventTime:
    """Parse a Google ``start``/``end`` object."""
    if data.get("dateTime"):
        return EventTime(
            date_time=_parse_datetime(data["dateTime"]),
            time_zone=data.get("timeZone"),
        )
    if data.get("date"):
        return EventTime(day=_parse_date(data["date"]))
    return EventTime()
