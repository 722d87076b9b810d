"""
Authentication module for Pocket Calendar.

Provides the bearer-token session, its persistent storage and the Google
identity provider client used to sign in and refresh tokens.
"""

from pocket_calendar.auth.exceptions import (
    AuthSessionError,
    AuthenticationError,
    IdentityProviderError,
    MissingCredentialError,
    is_session_expired,
)
from pocket_calendar.auth.identity import (
    GoogleIdentityClient,
    IdentityProvider,
    OAuthTokens,
    UserProfile,
)
from pocket_calendar.auth.session import AuthSession, build_auth_headers
from pocket_calendar.auth.token_storage import TokenStore

__all__ = [
    # Session
    "AuthSession",
    "build_auth_headers",
    "TokenStore",
    # Identity provider
    "GoogleIdentityClient",
    "IdentityProvider",
    "OAuthTokens",
    "UserProfile",
    # Errors
    "AuthSessionError",
    "AuthenticationError",
    "IdentityProviderError",
    "MissingCredentialError",
    "is_session_expired",
]
