"""
Google identity provider client.

Implements the OAuth 2.0 authorization code flow and the operations the
session layer needs from an identity provider:
1. Generate authorization URL → user redirected to Google
2. Exchange code for tokens → access_token + refresh_token
3. is_signed_in / get_tokens → silent refresh with the refresh_token
4. sign_out → revoke the grant
"""

import logging
from abc import abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional, Protocol
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, Field

from pocket_calendar.auth.exceptions import IdentityProviderError
from pocket_calendar.storage.key_value import KeyValueStore

logger = logging.getLogger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

# Calendar API scopes
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]

REFRESH_TOKEN_KEY = "google.refreshToken"


@dataclass
class OAuthTokens:
    """OAuth token response from Google."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    token_type: str
    scope: str

    @property
    def expiry(self) -> datetime:
        """Calculate token expiry time."""
        return datetime.now(timezone.utc) + timedelta(seconds=self.expires_in)


class UserProfile(BaseModel):
    """Signed-in user's profile, kept for display only."""

    name: Optional[str] = None
    email: str
    photo_url: Optional[str] = Field(default=None)


class IdentityProvider(Protocol):
    """Operations the session layer needs from an identity provider."""

    @abstractmethod
    async def is_signed_in(self) -> bool:
        ...

    @abstractmethod
    async def get_tokens(self) -> OAuthTokens:
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        ...


class GoogleIdentityClient(IdentityProvider):
    """
    Google OAuth client used for sign-in and silent token refresh.

    The refresh token is the provider's own credential. It is kept in
    memory and, when a credential store is given, persisted there so the
    user stays signed in across restarts.

    Usage:
        client = GoogleIdentityClient(client_id, client_secret, redirect_uri)

        # Step 1: Get authorization URL
        auth_url = client.get_authorization_url(state="random_state")

        # Step 2: Handle callback with authorization code
        tokens, profile = await client.sign_in(code)

        # Step 3: Refresh later without user interaction
        if await client.is_signed_in():
            tokens = await client.get_tokens()
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http_client: Optional[httpx.AsyncClient] = None,
        credential_store: Optional[KeyValueStore] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http_client = http_client
        self._credential_store = credential_store
        self._refresh_token: Optional[str] = None
        self._loaded = credential_store is None

        if not self.client_id or not self.client_secret:
            logger.warning(
                "Google OAuth not configured. Set GOOGLE_OAUTH_CLIENT_ID and "
                "GOOGLE_OAUTH_CLIENT_SECRET in environment."
            )

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    async def _load_refresh_token(self) -> Optional[str]:
        if not self._loaded:
            self._refresh_token = await self._credential_store.get(REFRESH_TOKEN_KEY)
            self._loaded = True
        return self._refresh_token

    async def _save_refresh_token(self, refresh_token: Optional[str]) -> None:
        self._refresh_token = refresh_token
        self._loaded = True
        if self._credential_store is None:
            return
        if refresh_token:
            await self._credential_store.set(REFRESH_TOKEN_KEY, refresh_token)
        else:
            await self._credential_store.multi_remove([REFRESH_TOKEN_KEY])

    def get_authorization_url(self, state: str) -> str:
        """
        Generate the Google OAuth authorization URL.

        Args:
            state: Random string to prevent CSRF attacks

        Returns:
            URL to redirect user to for authorization
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(CALENDAR_SCOPES),
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Always show consent screen (ensures refresh token)
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def sign_in(self, code: str) -> tuple[OAuthTokens, UserProfile]:
        """
        Exchange an authorization code and load the user's profile.

        Args:
            code: Authorization code from OAuth callback

        Returns:
            Tuple of tokens and profile

        Raises:
            httpx.HTTPStatusError: If the exchange or profile request fails
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }

        async with self._http() as client:
            response = await client.post(GOOGLE_TOKEN_URL, data=data)
            response.raise_for_status()
            tokens = _parse_tokens(response.json())

        await self._save_refresh_token(tokens.refresh_token)
        logger.info("Successfully exchanged authorization code for tokens")

        profile = await self.get_user_profile(tokens.access_token)
        return tokens, profile

    async def get_user_profile(self, access_token: str) -> UserProfile:
        """
        Get the user's profile from Google.

        Raises:
            httpx.HTTPStatusError: If request fails
        """
        headers = {"Authorization": f"Bearer {access_token}"}

        async with self._http() as client:
            response = await client.get(GOOGLE_USERINFO_URL, headers=headers)
            response.raise_for_status()
            user_data = response.json()

        return UserProfile(
            email=user_data["email"],
            name=user_data.get("name"),
            photo_url=user_data.get("picture"),
        )

    async def is_signed_in(self) -> bool:
        """Check whether a refresh token is available."""
        return bool(await self._load_refresh_token())

    async def get_tokens(self) -> OAuthTokens:
        """
        Obtain a fresh access token using the stored refresh token.

        Raises:
            IdentityProviderError: If no refresh token is held
            httpx.HTTPStatusError: If the token endpoint rejects the grant
        """
        refresh_token = await self._load_refresh_token()
        if not refresh_token:
            raise IdentityProviderError("Not signed in to Google")

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        async with self._http() as client:
            response = await client.post(GOOGLE_TOKEN_URL, data=data)
            response.raise_for_status()
            token_data = response.json()

        logger.info("Successfully refreshed access token")

        tokens = _parse_tokens(token_data)
        if tokens.refresh_token and tokens.refresh_token != refresh_token:
            await self._save_refresh_token(tokens.refresh_token)
        else:
            tokens.refresh_token = refresh_token  # Keep original refresh token
        return tokens

    async def sign_out(self) -> None:
        """
        Revoke the grant and forget the refresh token.

        The local refresh token is dropped even if revocation fails.

        Raises:
            httpx.HTTPError: If the revoke request fails
        """
        refresh_token = await self._load_refresh_token()
        await self._save_refresh_token(None)

        if not refresh_token:
            return

        async with self._http() as client:
            response = await client.post(GOOGLE_REVOKE_URL, data={"token": refresh_token})
            response.raise_for_status()

        logger.info("Revoked Google grant")


def _parse_tokens(token_data: dict) -> OAuthTokens:
    """Build OAuthTokens from a token endpoint response."""
    try:
        return OAuthTokens(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_in=int(token_data.get("expires_in", 3600)),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope", ""),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise IdentityProviderError(
            f"Malformed token response: {e}",
            original_error=e,
        )
