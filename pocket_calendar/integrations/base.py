"""
Calendar event types.

Defines the normalized event representation used by the views and the
draft type accepted by create/update operations.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional


@dataclass(frozen=True)
class EventTime:
    """
    Start or end of an event.

    Exactly one of ``day`` (all-day events) or ``date_time`` (timed
    events, timezone-aware) is set.
    """

    day: Optional[date] = None
    date_time: Optional[datetime] = None
    time_zone: Optional[str] = None

    @property
    def is_all_day(self) -> bool:
        return self.day is not None

    def local_date(self, tz: tzinfo) -> Optional[date]:
        """Calendar day of this moment in ``tz``."""
        if self.day is not None:
            return self.day
        if self.date_time is not None:
            return self.date_time.astimezone(tz).date()
        return None

    def sort_key(self, tz: tzinfo) -> datetime:
        """Comparable instant; all-day values sort at local midnight."""
        if self.date_time is not None:
            return self.date_time
        if self.day is not None:
            return datetime(self.day.year, self.day.month, self.day.day, tzinfo=tz)
        return datetime.fromtimestamp(0, tz)


@dataclass
class CalendarEvent:
    """
    Event read from the remote calendar.

    Held transiently by the views and never persisted. ``is_editable`` is
    true only for events of the user's primary calendar.
    """

    id: str
    calendar_id: str
    summary: str
    start: EventTime
    end: EventTime
    description: Optional[str] = None
    location: Optional[str] = None
    is_holiday: bool = False
    is_editable: bool = False
    metadata: dict = field(default_factory=dict)

    @property
    def is_all_day(self) -> bool:
        return self.start.is_all_day

    def occurs_on(self, day: date, tz: tzinfo) -> bool:
        """
        Check whether the event covers ``day`` in ``tz``.

        All-day end dates are exclusive; a timed event ending exactly at
        midnight does not cover the following day.
        """
        first = self.start.local_date(tz)
        if first is None:
            return False

        if self.end.day is not None:
            last = self.end.day - timedelta(days=1)
        elif self.end.date_time is not None:
            end_local = self.end.date_time.astimezone(tz)
            last = end_local.date()
            if end_local.time() == datetime.min.time() and last > first:
                last -= timedelta(days=1)
        else:
            last = first

        return first <= day <= max(first, last)

    def days(self, tz: tzinfo) -> list[date]:
        """Every local day the event covers."""
        first = self.start.local_date(tz)
        if first is None:
            return []
        result = []
        current = first
        while self.occurs_on(current, tz):
            result.append(current)
            current += timedelta(days=1)
        return result


@dataclass
class EventDraft:
    """
    User input for creating or updating an event.

    Used as input to GoogleCalendarClient.create_event() and update_event().
    """

    title: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    all_day: bool = False
