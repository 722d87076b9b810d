"""
Custom exceptions for Google Calendar operations.

Provides structured error handling with retryable flags.
"""

from typing import Optional


class GoogleCalendarError(Exception):
    """Base exception for Google Calendar operations."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.status_code = status_code


class GoogleCalendarServerError(GoogleCalendarError):
    """
    Transient server-side failure (500, 502, 503, 504).

    Retryable after backoff.
    """

    retryable = True


class GoogleCalendarPermissionError(GoogleCalendarError):
    """
    Authorization failure for a valid token.

    Causes:
    - Insufficient scopes
    - Writing to a read-only calendar (e.g. holidays)
    """

    retryable = False


class GoogleCalendarQuotaError(GoogleCalendarError):
    """
    Quota exhausted (403 with a quotaExceeded or rateLimitExceeded reason).

    Retryable after backoff.
    """

    retryable = True


class GoogleCalendarNotFoundError(GoogleCalendarError):
    """
    Event or calendar not found (404) or already deleted (410).
    """

    retryable = False


class GoogleCalendarConflictError(GoogleCalendarError):
    """
    Event update conflict.

    Causes:
    - Stale etag (event was modified concurrently)
    - Event ID already exists

    Not retried automatically; the event must be re-fetched first.
    """

    retryable = False


class GoogleCalendarRateLimitError(GoogleCalendarError):
    """
    Rate limit hit (429 response).

    Retryable after exponential backoff.
    """

    retryable = True


class GoogleCalendarValidationError(GoogleCalendarError):
    """
    Invalid event data.

    Causes:
    - Missing title
    - End time not after start time
    - Rejected by the API (400)
    """

    retryable = False
