"""
Google Calendar integration for Pocket Calendar.

Provides calendar CRUD over the Google Calendar REST API through the
authenticated session.
"""

from pocket_calendar.integrations.google_calendar.adapter import (
    GoogleCalendarAdapter,
    format_event_for_api,
)
from pocket_calendar.integrations.google_calendar.client import GoogleCalendarClient
from pocket_calendar.integrations.google_calendar.exceptions import (
    GoogleCalendarConflictError,
    GoogleCalendarError,
    GoogleCalendarNotFoundError,
    GoogleCalendarPermissionError,
    GoogleCalendarQuotaError,
    GoogleCalendarRateLimitError,
    GoogleCalendarServerError,
    GoogleCalendarValidationError,
)

__all__ = [
    "GoogleCalendarAdapter",
    "GoogleCalendarClient",
    "format_event_for_api",
    "GoogleCalendarError",
    "GoogleCalendarConflictError",
    "GoogleCalendarNotFoundError",
    "GoogleCalendarPermissionError",
    "GoogleCalendarQuotaError",
    "GoogleCalendarRateLimitError",
    "GoogleCalendarServerError",
    "GoogleCalendarValidationError",
]
