"""
Application composition root.

Builds the storage, identity provider, session and calendar client once
and hands the same AuthSession to every consumer. Screens receive the
app (or its session) explicitly instead of reaching for a global.
"""

import logging
from functools import lru_cache
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from pocket_calendar.auth.identity import GoogleIdentityClient, UserProfile
from pocket_calendar.auth.session import AuthSession
from pocket_calendar.auth.token_storage import TokenStore
from pocket_calendar.config import Settings, get_settings
from pocket_calendar.database import create_engine_for_url
from pocket_calendar.http_client import create_http_client
from pocket_calendar.integrations.google_calendar.client import GoogleCalendarClient
from pocket_calendar.storage.key_value import KeyValueStore, SQLAlchemyKeyValueStore

logger = logging.getLogger(__name__)

HOME_ROUTE = "Home"
LOGIN_ROUTE = "Login"


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class CalendarApp:
    """
    Wires the application together.

    Attributes:
        settings: Loaded settings
        http_client: Shared HTTP client
        token_store: Session value storage
        identity: Google identity provider client
        auth_session: The one session of the process
        calendar: Calendar operations bound to the session
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        store: KeyValueStore,
        engine: Optional[AsyncEngine] = None,
    ):
        self.settings = settings
        self.http_client = http_client
        self._engine = engine

        self.token_store = TokenStore(store)
        self.identity = GoogleIdentityClient(
            client_id=settings.google_oauth_client_id,
            client_secret=settings.google_oauth_client_secret,
            redirect_uri=settings.google_oauth_redirect_uri,
            http_client=http_client,
            credential_store=store,
        )
        self.auth_session = AuthSession(
            token_store=self.token_store,
            identity_provider=self.identity,
            http_client=http_client,
            coalesce_refreshes=settings.coalesce_token_refresh,
        )
        self.calendar = GoogleCalendarClient(
            session=self.auth_session,
            base_url=settings.calendar_api_base_url,
            primary_calendar_id=settings.primary_calendar_id,
            holiday_calendar_id=settings.holiday_calendar_id,
            time_zone=settings.timezone,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CalendarApp":
        """
        Build the app from settings.

        Args:
            settings: Settings (defaults to get_settings())
            store: Key-value store (defaults to the configured database)
            transport: HTTP transport override

        Returns:
            A ready CalendarApp; no I/O is performed
        """
        settings = settings or get_settings()
        engine = None
        if store is None:
            engine = create_engine_for_url(
                settings.database_url,
                echo=settings.log_level == "DEBUG",
            )
            store = SQLAlchemyKeyValueStore(engine)

        return cls(
            settings=settings,
            http_client=create_http_client(settings, transport=transport),
            store=store,
            engine=engine,
        )

    async def initial_route(self) -> str:
        """Route to open after the splash screen."""
        if await self.auth_session.is_authenticated():
            return HOME_ROUTE
        return LOGIN_ROUTE

    async def login(self, authorization_code: str) -> UserProfile:
        """
        Complete an interactive Google sign-in.

        Args:
            authorization_code: Code returned by the OAuth redirect

        Returns:
            The signed-in user's profile

        Raises:
            httpx.HTTPError: If the code exchange fails
        """
        tokens, profile = await self.identity.sign_in(authorization_code)
        await self.auth_session.complete_sign_in(tokens.access_token, profile)
        return profile

    async def logout(self) -> bool:
        return await self.auth_session.logout()

    async def aclose(self) -> None:
        """Release the HTTP client and database engine."""
        await self.http_client.aclose()
        if self._engine is not None:
            await self._engine.dispose()


@lru_cache()
def get_app() -> CalendarApp:
    """
    Get the process-wide application, creating it on first access.

    This is the entry point of the running app: it installs logging and
    checks the OAuth client settings before wiring anything.

    Returns:
        Cached CalendarApp built from get_settings()

    Raises:
        ValueError: If the Google OAuth client is not configured
    """
    settings = get_settings()
    configure_logging(settings)
    settings.validate_google_oauth_config()
    return CalendarApp.from_settings(settings)


def get_auth_session() -> AuthSession:
    """Get the process-wide AuthSession."""
    return get_app().auth_session
