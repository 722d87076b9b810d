"""
Google Calendar REST client built on the authenticated session.

Every call goes through AuthSession.make_authenticated_request, so token
expiry is handled there. This module adds:
- Mapping of error statuses to GoogleCalendarError subclasses
- Retry with exponential backoff for retryable errors
- Pagination for list operations
- Day and month views over the primary and holiday calendars
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Sequence
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from pocket_calendar.auth.session import AuthSession
from pocket_calendar.integrations.base import CalendarEvent, EventDraft
from pocket_calendar.integrations.google_calendar.adapter import (
    GoogleCalendarAdapter,
    _format_datetime,
    format_event_for_api,
    resolve_timezone,
)
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

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.googleapis.com/calendar/v3"

# Largest page the events.list endpoint accepts
MAX_RESULTS_PER_PAGE = 2500


def _is_retryable_error(exception: BaseException) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exception, GoogleCalendarError):
        return exception.retryable
    return False


def _error_reason(response: httpx.Response) -> str:
    """Extract the error reason and message from a Google error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if not isinstance(body, dict):
        return response.text
    error = body.get("error", {})
    if not isinstance(error, dict):
        return str(error)
    reasons = [
        item.get("reason", "")
        for item in error.get("errors", [])
        if isinstance(item, dict)
    ]
    return " ".join([*reasons, str(error.get("message", ""))]).strip()


def _raise_for_status(response: httpx.Response) -> None:
    """Convert an error response to the appropriate GoogleCalendarError."""
    status = response.status_code
    if status < 400:
        return

    message = _error_reason(response)
    lowered = message.lower()

    if status == 400:
        raise GoogleCalendarValidationError(
            f"Invalid request: {message}",
            status_code=status,
        )
    elif status == 403:
        if "quota" in lowered or "ratelimit" in lowered or "rate limit" in lowered:
            raise GoogleCalendarQuotaError(
                "API quota exceeded",
                status_code=status,
            )
        raise GoogleCalendarPermissionError(
            "Access denied - the calendar may be read-only",
            status_code=status,
        )
    elif status in (404, 410):
        raise GoogleCalendarNotFoundError(
            "Event or calendar not found",
            status_code=status,
        )
    elif status in (409, 412):
        raise GoogleCalendarConflictError(
            "Event was modified by another process",
            status_code=status,
        )
    elif status == 429:
        raise GoogleCalendarRateLimitError(
            "Rate limit exceeded - too many requests",
            status_code=status,
        )
    elif status in (500, 502, 503, 504):
        raise GoogleCalendarServerError(
            f"Google Calendar API unavailable ({status})",
            status_code=status,
        )
    else:
        raise GoogleCalendarError(
            f"Google Calendar API error ({status}): {message}",
            status_code=status,
        )


class GoogleCalendarClient:
    """
    Calendar operations for the signed-in user.

    Provides:
    - Automatic retry with exponential backoff
    - Consistent error handling
    - Pagination handling for list operations

    Authentication errors from the session are never retried here.
    """

    def __init__(
        self,
        session: AuthSession,
        base_url: str = DEFAULT_BASE_URL,
        primary_calendar_id: str = "primary",
        holiday_calendar_id: Optional[str] = None,
        time_zone: str = "UTC",
        max_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the client.

        Args:
            session: Authenticated session used for every request
            base_url: Calendar API base URL
            primary_calendar_id: The user's editable calendar
            holiday_calendar_id: Read-only holiday calendar (None to disable)
            time_zone: IANA timezone used for day boundaries
            max_attempts: Attempts per call for retryable errors
            retry_wait: Wait strategy between attempts
            clock: Returns the current time (UTC)
        """
        self._session = session
        self._base_url = base_url.rstrip("/")
        self.primary_calendar_id = primary_calendar_id
        self.holiday_calendar_id = holiday_calendar_id or None
        self.time_zone = time_zone
        self._tz = resolve_timezone(time_zone)
        self._max_attempts = max_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._adapter = GoogleCalendarAdapter()

    def events_url(self, calendar_id: str, event_id: Optional[str] = None) -> str:
        """Build the events collection or event resource URL."""
        url = f"{self._base_url}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id is not None:
            url = f"{url}/{quote(event_id, safe='')}"
        return url

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send an authenticated request, retrying retryable errors."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception(_is_retryable_error),
            reraise=True,
        ):
            with attempt:
                response = await self._session.make_authenticated_request(
                    url, method=method, **kwargs
                )
                _raise_for_status(response)
        return response

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: Optional[datetime] = None,
        single_events: bool = True,
        max_results: int = MAX_RESULTS_PER_PAGE,
        page_token: Optional[str] = None,
    ) -> dict:
        """
        List one page of events from a calendar.

        Args:
            calendar_id: Calendar to query
            time_min: Lower bound
            time_max: Upper bound (open-ended if None)
            single_events: If True, expand recurring events
            max_results: Maximum events per page
            page_token: Token for pagination

        Returns:
            API response with items and nextPageToken
        """
        params = {
            "maxResults": str(max_results),
            "singleEvents": "true" if single_events else "false",
            "timeMin": _format_datetime(time_min),
        }
        if single_events:
            params["orderBy"] = "startTime"
        if time_max is not None:
            params["timeMax"] = _format_datetime(time_max)
        if page_token:
            params["pageToken"] = page_token

        response = await self._request("GET", self.events_url(calendar_id), params=params)
        return response.json()

    async def list_all_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: Optional[datetime] = None,
        single_events: bool = True,
    ) -> list[dict]:
        """
        List all events with automatic pagination.

        Returns:
            List of all events in the range
        """
        all_events: list[dict] = []
        page_token = None

        while True:
            response = await self.list_events(
                calendar_id=calendar_id,
                time_min=time_min,
                time_max=time_max,
                single_events=single_events,
                page_token=page_token,
            )

            events = response.get("items", [])
            all_events.extend(events)
            logger.debug(f"Fetched batch of {len(events)} events from {calendar_id}")

            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Listed {len(all_events)} events from {calendar_id}")
        return all_events

    async def get_events_in_range(
        self,
        calendar_id: str,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[CalendarEvent]:
        """
        Get events of one calendar within a time range.

        Events from the holiday calendar are flagged as holidays; only
        events from the primary calendar are editable.
        """
        is_holiday = calendar_id == self.holiday_calendar_id
        google_events = await self.list_all_events(
            calendar_id=calendar_id,
            time_min=start,
            time_max=end,
        )
        return [
            self._adapter.from_google_event(
                event,
                calendar_id,
                is_holiday=is_holiday,
                is_editable=calendar_id == self.primary_calendar_id,
            )
            for event in google_events
        ]

    async def get_events(self) -> list[CalendarEvent]:
        """Get all upcoming events of the primary calendar."""
        events = await self.get_events_in_range(self.primary_calendar_id, self._clock())
        logger.info(f"Total events fetched: {len(events)}")
        return events

    async def _get_visible_events(self, start: datetime, end: datetime) -> list[CalendarEvent]:
        """
        Primary events plus holidays.

        Holiday failures other than authentication are logged and skipped.
        """
        events = await self.get_events_in_range(self.primary_calendar_id, start, end)

        if self.holiday_calendar_id:
            try:
                events.extend(
                    await self.get_events_in_range(self.holiday_calendar_id, start, end)
                )
            except (GoogleCalendarError, httpx.TransportError, ValueError) as e:
                logger.warning(f"Skipping holidays: {e!r}")

        return events

    def _local_midnight(self, day: date) -> datetime:
        return datetime(day.year, day.month, day.day, tzinfo=self._tz)

    def _sorted(self, events: Sequence[CalendarEvent]) -> list[CalendarEvent]:
        return sorted(events, key=lambda event: event.start.sort_key(self._tz))

    async def get_events_for_date(self, day: date) -> list[CalendarEvent]:
        """
        Get the events shown in the day view.

        Args:
            day: Local calendar day

        Returns:
            Primary and holiday events on that day, ordered by start
        """
        start = self._local_midnight(day)
        end = self._local_midnight(day + timedelta(days=1))

        events = await self._get_visible_events(start, end)
        return self._sorted(event for event in events if event.occurs_on(day, self._tz))

    async def get_events_for_month(self, year: int, month: int) -> dict[date, list[CalendarEvent]]:
        """
        Get events for the month grid, grouped by local day.

        Multi-day events appear under every day they cover.
        """
        first_day = date(year, month, 1)
        next_month = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)

        events = await self._get_visible_events(
            self._local_midnight(first_day),
            self._local_midnight(next_month),
        )

        grid: dict[date, list[CalendarEvent]] = {}
        for event in self._sorted(events):
            for day in event.days(self._tz):
                if first_day <= day < next_month:
                    grid.setdefault(day, []).append(event)
        return grid

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_event(self, draft: EventDraft) -> CalendarEvent:
        """
        Create an event in the primary calendar.

        Returns:
            The created event as returned by the server

        Raises:
            GoogleCalendarValidationError: If the draft is invalid
        """
        body = format_event_for_api(draft, time_zone=self.time_zone)
        response = await self._request(
            "POST", self.events_url(self.primary_calendar_id), json=body
        )
        event = self._from_primary(response.json())
        logger.info(f"Created event {event.id} in {self.primary_calendar_id}")
        return event

    async def update_event(self, event_id: str, draft: EventDraft) -> CalendarEvent:
        """
        Replace an event of the primary calendar.

        Returns:
            The updated event as returned by the server
        """
        body = format_event_for_api(draft, time_zone=self.time_zone)
        response = await self._request(
            "PUT", self.events_url(self.primary_calendar_id, event_id), json=body
        )
        event = self._from_primary(response.json())
        logger.info(f"Updated event {event_id} in {self.primary_calendar_id}")
        return event

    async def delete_event(self, event_id: str) -> None:
        """Delete an event of the primary calendar."""
        try:
            await self._request(
                "DELETE", self.events_url(self.primary_calendar_id, event_id)
            )
            logger.info(f"Deleted event {event_id} from {self.primary_calendar_id}")
        except GoogleCalendarNotFoundError:
            # Already deleted - consider success
            logger.warning(f"Event {event_id} already deleted")

    def _from_primary(self, google_event: dict) -> CalendarEvent:
        return self._adapter.from_google_event(
            google_event,
            self.primary_calendar_id,
            is_editable=True,
        )
