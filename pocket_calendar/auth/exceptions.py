"""
Custom exceptions for session and authentication operations.

Provides structured error handling so callers can tell an expired session
apart from other failures.
"""

from typing import Optional


class AuthSessionError(Exception):
    """Base exception for session operations."""

    retryable: bool = False

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class AuthenticationError(AuthSessionError):
    """
    The user must sign in again.

    Raised after the expiry listener has been notified. ``kind`` tells
    which terminal outcome was reached:
    - "missing_credential": no access token was stored
    - "refresh_failed": the identity provider could not issue a new token
    - "rejected_after_refresh": the refreshed token was also rejected with 401
    """

    MISSING_CREDENTIAL = "missing_credential"
    REFRESH_FAILED = "refresh_failed"
    REJECTED_AFTER_REFRESH = "rejected_after_refresh"

    retryable = False

    def __init__(
        self,
        message: str,
        kind: str = REJECTED_AFTER_REFRESH,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error=original_error)
        self.kind = kind


class MissingCredentialError(AuthenticationError):
    """No access token is stored, so no request was sent."""

    def __init__(self, message: str = "No access token found"):
        super().__init__(message, kind=AuthenticationError.MISSING_CREDENTIAL)


class IdentityProviderError(AuthSessionError):
    """
    The identity provider could not complete an operation.

    Causes:
    - No refresh token is held (user never signed in or signed out)
    - Token endpoint rejected the grant
    - Malformed token response
    """


def is_session_expired(error: BaseException) -> bool:
    """
    Check whether ``error`` means the session has expired.

    The expiry listener has already informed the user in that case, so
    callers should not show a second error for it.
    """
    return isinstance(error, AuthenticationError)
