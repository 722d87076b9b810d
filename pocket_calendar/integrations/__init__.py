"""
Calendar integrations for Pocket Calendar.
"""

from pocket_calendar.integrations.base import CalendarEvent, EventDraft, EventTime

__all__ = [
    "CalendarEvent",
    "EventDraft",
    "EventTime",
]
