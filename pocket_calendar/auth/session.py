"""
Authenticated session management.

AuthSession is the single authority on whether the user is signed in. It:
- Attaches the stored bearer token to outbound requests
- Refreshes the token through the identity provider on HTTP 401
- Retries the rejected request at most once with the new token
- Notifies a single registered listener when the user must sign in again

Request outcomes:

    no token          -> listener notified, MissingCredentialError
    status != 401     -> response returned unchanged
    401, refresh None -> AuthenticationError (listener notified by refresh)
    401, retry != 401 -> retry response returned
    401, retry 401    -> listener notified, AuthenticationError
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Mapping, Optional, Union

import httpx

from pocket_calendar.auth.exceptions import AuthenticationError, MissingCredentialError
from pocket_calendar.auth.identity import IdentityProvider, UserProfile
from pocket_calendar.auth.token_storage import TokenStore

logger = logging.getLogger(__name__)

ExpiredCallback = Callable[[], None]

# A rejected request is re-sent at most this many times with a refreshed token
MAX_AUTH_RETRIES = 1

HeaderTypes = Union[httpx.Headers, Mapping[str, str], None]


def build_auth_headers(headers: HeaderTypes, token: str) -> httpx.Headers:
    """
    Merge caller headers with the bearer token.

    Caller headers are kept, Content-Type defaults to JSON and
    Authorization is always replaced.
    """
    merged = httpx.Headers(headers or {})
    merged.setdefault("Content-Type", "application/json")
    merged["Authorization"] = f"Bearer {token}"
    return merged


class AuthSession:
    """
    Bearer-token lifecycle and self-healing authenticated requests.

    One instance is shared by the whole application (see
    ``pocket_calendar.app.get_auth_session``). Concurrent requests that
    hit 401 refresh independently unless ``coalesce_refreshes`` is set,
    in which case they await a single shared refresh.
    """

    def __init__(
        self,
        token_store: TokenStore,
        identity_provider: IdentityProvider,
        http_client: httpx.AsyncClient,
        coalesce_refreshes: bool = False,
    ):
        """
        Initialize the session.

        Args:
            token_store: Persistent storage for token and profile
            identity_provider: Client used for refresh and sign-out
            http_client: Client used for authenticated requests
            coalesce_refreshes: Share one in-flight refresh between callers
        """
        self._token_store = token_store
        self._identity = identity_provider
        self._http = http_client
        self._coalesce_refreshes = coalesce_refreshes
        self._expired_callback: Optional[ExpiredCallback] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def token_store(self) -> TokenStore:
        return self._token_store

    # -------------------------------------------------------------------------
    # Expiry notification
    # -------------------------------------------------------------------------

    def set_expired_callback(self, callback: Optional[ExpiredCallback]) -> None:
        """
        Register the expiry listener, replacing any previous one.

        Pass None to clear it.
        """
        self._expired_callback = callback

    @contextmanager
    def expiry_listener(self, callback: ExpiredCallback) -> Iterator["AuthSession"]:
        """
        Keep ``callback`` registered for the duration of the block.

        On exit the listener is cleared unless another one replaced it
        in the meantime.

        Usage:
            with session.expiry_listener(show_expired_modal):
                await run_screen()
        """
        self.set_expired_callback(callback)
        try:
            yield self
        finally:
            if self._expired_callback == callback:
                self._expired_callback = None

    def _notify_expired(self) -> None:
        logger.info("Token expired, notifying listener")
        callback = self._expired_callback
        if callback is None:
            logger.debug("No expiry listener registered")
            return
        try:
            callback()
        except Exception:
            logger.exception("Expiry listener raised")

    # -------------------------------------------------------------------------
    # Session state
    # -------------------------------------------------------------------------

    async def is_authenticated(self) -> bool:
        """Check whether an access token is stored."""
        return bool(await self._token_store.get_token())

    async def current_user(self) -> Optional[UserProfile]:
        return await self._token_store.get_user_profile()

    async def complete_sign_in(self, access_token: str, profile: UserProfile) -> None:
        """
        Persist the result of an interactive sign-in.

        Args:
            access_token: Bearer token for the calendar API
            profile: Signed-in user's profile
        """
        await self._token_store.set_user_profile(profile)
        await self._token_store.set_token(access_token)
        logger.info(f"Signed in as {profile.email}")

    async def logout(self) -> bool:
        """
        Sign out at the identity provider and clear local session data.

        Local data is cleared even if the provider cannot be reached.

        Returns:
            Always True
        """
        try:
            await self._identity.sign_out()
            logger.info("Signed out from identity provider")
        except Exception as e:
            logger.error(f"Error during identity provider sign-out: {e}")

        await self._token_store.clear()
        logger.info("User logged out successfully")
        return True

    # -------------------------------------------------------------------------
    # Token refresh
    # -------------------------------------------------------------------------

    async def refresh_token(self) -> Optional[str]:
        """
        Obtain and store a new access token without user interaction.

        Notifies the expiry listener when no token can be obtained.
        Never raises.

        Returns:
            The new access token, or None if refresh failed
        """
        if not self._coalesce_refreshes:
            return await self._refresh_token()

        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh_token())
        else:
            logger.debug("Joining in-flight token refresh")
        return await asyncio.shield(self._refresh_task)

    async def _refresh_token(self) -> Optional[str]:
        logger.info("Attempting to refresh token...")
        try:
            if not await self._identity.is_signed_in():
                logger.info("User is not signed in to the identity provider")
                self._notify_expired()
                return None

            tokens = await self._identity.get_tokens()
        except Exception as e:
            logger.error(f"Error refreshing token: {e}")
            self._notify_expired()
            return None

        access_token = getattr(tokens, "access_token", None) if tokens else None
        if not access_token:
            logger.warning("Failed to get fresh tokens")
            self._notify_expired()
            return None

        await self._token_store.set_token(access_token)
        logger.info("Successfully refreshed token")
        return access_token

    # -------------------------------------------------------------------------
    # Authenticated requests
    # -------------------------------------------------------------------------

    async def make_authenticated_request(
        self,
        url: str,
        method: str = "GET",
        headers: HeaderTypes = None,
        **kwargs,
    ) -> httpx.Response:
        """
        Send a request with the stored bearer token.

        A 401 response triggers one refresh and one retry. Other responses,
        including error statuses, are returned as they are. Transport
        errors propagate unchanged.

        Args:
            url: Absolute request URL
            method: HTTP method
            headers: Extra request headers
            **kwargs: Passed to ``httpx.AsyncClient.request`` (json, params, content, ...)

        Returns:
            The HTTP response

        Raises:
            MissingCredentialError: If no token is stored
            AuthenticationError: If the session could not be restored
        """
        token = await self._token_store.get_token()
        if not token:
            self._notify_expired()
            raise MissingCredentialError()

        retries = 0
        while True:
            response = await self._http.request(
                method,
                url,
                headers=build_auth_headers(headers, token),
                **kwargs,
            )

            if response.status_code != httpx.codes.UNAUTHORIZED:
                return response

            if retries >= MAX_AUTH_RETRIES:
                logger.warning(f"{method} {url} still unauthorized after token refresh")
                self._notify_expired()
                raise AuthenticationError(
                    "Authentication failed after token refresh",
                    kind=AuthenticationError.REJECTED_AFTER_REFRESH,
                )

            retries += 1
            logger.info("Received 401, attempting token refresh...")
            token = await self.refresh_token()
            if not token:
                raise AuthenticationError(
                    "Token refresh failed",
                    kind=AuthenticationError.REFRESH_FAILED,
                )
